"""
Minimal one-call smoke test to verify the configured generation model.

Usage:
  export OPENAI_API_KEY=your_key
  python scripts/llm_smoke.py --provider openai --model gpt-4o-mini
"""
import argparse
import sys
from pathlib import Path

# Ensure repository root is on sys.path for local execution.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import get_settings
from llm.client import build_client
from llm.parsing import parse_enhancement
from llm.prompts import build_prompt
from schemas.resume import ResumeField


def main():
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Generation model smoke test (single call).")
    parser.add_argument("--provider", default=settings.llm_provider, help="openai or huggingface.")
    parser.add_argument("--model", default=settings.llm_model, help="Model name to test.")
    parser.add_argument("--role", default="Data Analyst", help="Role used in the prompt.")
    args = parser.parse_args()

    try:
        client = build_client(args.provider, settings.llm_api_key, args.model)
    except ValueError as exc:
        raise SystemExit(f"Cannot build client: {exc}")

    skills = ["Python", "SQL", "Excel"]
    prompt = build_prompt(ResumeField.SKILLS, skills, args.role)
    resp = client.chat(prompt, max_retries=1)
    print("Response:", resp)
    parsed = parse_enhancement(resp, ResumeField.SKILLS, skills)
    print("Parsed:", parsed.value if parsed.applied else f"(fallback: {parsed.reason})")


if __name__ == "__main__":
    main()
