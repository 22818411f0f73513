from __future__ import annotations

import pathlib
from typing import Dict

from jinja2 import Environment, FileSystemLoader, select_autoescape

from schemas.resume import ResumeDocument

TEMPLATE_DIR = pathlib.Path(__file__).resolve().parent.parent / "templates"
DEFAULT_TEMPLATE = "classic"


def list_templates() -> Dict[str, pathlib.Path]:
    return {p.stem: p for p in TEMPLATE_DIR.glob("*.html")}


def render_template(template_name: str, context: dict) -> str:
    templates = list_templates()
    if template_name not in templates:
        raise ValueError(f"Template {template_name} not found. Available: {list(templates)}")

    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(enabled_extensions=("html",)),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    template = env.get_template(f"{template_name}.html")
    return template.render(**context)


def render_resume_html(resume: ResumeDocument, template_name: str = DEFAULT_TEMPLATE) -> str:
    """Self-contained HTML (inline styles only) for the PDF renderer."""
    return render_template(template_name, {"resume": resume.to_wire()})
