from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

from errors import ExternalServiceError

logger = logging.getLogger(__name__)

BROWSER_CANDIDATES = (
    "chromium",
    "chromium-browser",
    "google-chrome",
    "google-chrome-stable",
)


def find_browser(preferred: Optional[str] = None) -> Optional[str]:
    candidates = (preferred,) if preferred else BROWSER_CANDIDATES
    for name in candidates:
        path = shutil.which(name)
        if path:
            return path
    return None


def browser_available(preferred: Optional[str] = None) -> bool:
    return find_browser(preferred) is not None


class PdfRenderer:
    """Prints self-contained HTML to PDF with headless Chromium."""

    def __init__(self, binary: Optional[str] = None, timeout: float = 60.0):
        self.binary = binary
        self.timeout = timeout

    def render(self, html: str) -> bytes:
        browser = find_browser(self.binary)
        if browser is None:
            raise ExternalServiceError(
                "Headless Chromium is not installed. Install chromium or set CHROME_BINARY."
            )

        with tempfile.TemporaryDirectory(prefix="resume_pdf_") as tmpdir:
            html_path = Path(tmpdir) / "resume.html"
            pdf_path = Path(tmpdir) / "resume.pdf"
            html_path.write_text(html, encoding="utf-8")

            try:
                subprocess.run(
                    [
                        browser,
                        "--headless",
                        "--disable-gpu",
                        "--no-sandbox",
                        "--no-pdf-header-footer",
                        f"--print-to-pdf={pdf_path}",
                        html_path.as_uri(),
                    ],
                    check=True,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    timeout=self.timeout,
                )
            except subprocess.CalledProcessError as exc:
                logger.error("Chromium failed: %s", exc.stderr)
                raise ExternalServiceError("PDF rendering failed") from exc
            except subprocess.TimeoutExpired as exc:
                raise ExternalServiceError(
                    f"PDF rendering timed out after {self.timeout:.0f}s"
                ) from exc

            if not pdf_path.exists():
                raise ExternalServiceError("PDF rendering produced no output")
            return pdf_path.read_bytes()
