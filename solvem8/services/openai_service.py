"""OpenAI wrapper.

The rest of the app only sees `generate_solution(text) -> str`.
"""
from __future__ import annotations

import logging
from typing import Tuple

from flask import current_app

from solvem8.errors import AIServiceError

try:
    from openai import OpenAI
except Exception:
    OpenAI = None

logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 60000
DEFAULT_MODEL = "gpt-4.1"

SYSTEM_PROMPT = (
    "You are SOLVEM8, a patient tutor who solves student assignments. "
    "Answer every question in the assignment in order. Number each answer to match "
    "its question, show the working for calculations step by step, and keep "
    "explanations clear enough for a student to follow. Use plain text with simple "
    "markdown (headings, lists, inline code for formulas)."
)


def api_key() -> str:
    return (current_app.config.get("OPENAI_API_KEY") or "").strip()


def client_ready() -> Tuple[bool, str]:
    if OpenAI is None:
        return False, "OpenAI SDK not installed"
    key = api_key()
    if not key:
        return False, "OPENAI_API_KEY is missing"
    return True, ""


def model_name() -> str:
    return (current_app.config.get("OPENAI_MODEL") or "").strip() or DEFAULT_MODEL


def get_client():
    ok, _ = client_ready()
    if not ok:
        return None
    return OpenAI(api_key=api_key(), timeout=60)


def clamp_text(s: str, limit: int = MAX_INPUT_CHARS) -> str:
    s = s or ""
    return s if len(s) <= limit else s[:limit]


def generate_solution(text: str, temperature: float = 0.3) -> str:
    """Send assignment text to the model and return the solution text."""
    client = get_client()
    if client is None:
        _, msg = client_ready()
        raise AIServiceError(f"AI service unavailable: {msg}")

    try:
        res = client.chat.completions.create(
            model=model_name(),
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": f"Solve this assignment:\n\n{clamp_text(text)}"},
            ],
            temperature=temperature,
        )
    except Exception as e:
        raise AIServiceError(f"LLM request failed: {type(e).__name__}: {e}") from e

    solution = (res.choices[0].message.content or "").strip()
    if not solution:
        raise AIServiceError("Model returned an empty solution")
    return solution
