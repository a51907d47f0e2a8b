"""Heuristic reformatting of extracted assignment text.

Presentation only: the raw extracted text is what gets sent to the model.
Each pass is a plain function str -> str; `format_extracted_text` runs them in
a fixed order. Everything after table fencing only touches text outside
``` fences and `inline code`, which keeps the whole pipeline idempotent.
"""
import re
from typing import Callable, List

TABLE_FENCE_OPEN = "```table"
FENCE_CLOSE = "```"
# Longer "cells" are prose separated by double spaces, not table data
MAX_CELL_LENGTH = 40

_FENCED_RE = re.compile(r"(```[^\n]*\n.*?\n```)", re.DOTALL)
_INLINE_CODE_RE = re.compile(r"(`[^`\n]+`)")

_CELL_SPLIT_RE = re.compile(r"\t+|\s{2,}")
_HSPACE_RE = re.compile(r"[ \t\f\v]+")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_SENTENCE_BREAK_RE = re.compile(r"(?<=[a-z)][.!?])[ \t]*\n?[ \t]*(?=[A-Z])")
_HEADER_RE = re.compile(
    r"^(?P<kind>section|part|exercise|problem)\s+(?P<num>\d+|[IVXLC]+|[A-Z])\b[.:)\-]?[ \t]*(?P<rest>.*)$",
    re.IGNORECASE | re.MULTILINE,
)
_QUESTION_RE = re.compile(
    r"^(?:(?:Q|Question)\s*(?P<qnum>\d{1,3})[.:)]?|(?P<num>\d{1,3})[.)]|\((?P<plet>[a-z])\)|(?P<let>[a-z])\))[ \t]+",
    re.MULTILINE,
)
_CHOICE_RE = re.compile(
    r"(?<![\[\w])(?P<opt>True\s*/\s*False|T\s*/\s*F|Yes\s*/\s*No)(?![\w\]])",
    re.IGNORECASE,
)
_OPERAND = r"(?:\d+(?:\.\d+)?[a-zA-Z]?(?:\^\d+)?|[a-zA-Z](?:\^\d+)?|\(\s*[\w.^+\-*/ ]+\s*\))"
_MATH_RE = re.compile(rf"(?<![\w`]){_OPERAND}(?:\s*[-+*/=^<>]\s*{_OPERAND})+(?![\w`])")
_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}$")


def _plain_segments(text: str, pattern: re.Pattern, func: Callable[[str], str]) -> str:
    """Apply func to the parts of text that are not matched by pattern."""
    parts = pattern.split(text)
    # re.split with one capture group alternates plain, protected, plain, ...
    return "".join(func(p) if i % 2 == 0 else p for i, p in enumerate(parts))


def _outside_fences(func: Callable[[str], str]) -> Callable[[str], str]:
    def wrapped(text: str) -> str:
        if not text:
            return text
        return _plain_segments(text, _FENCED_RE, func)
    wrapped.__name__ = func.__name__
    wrapped.__doc__ = func.__doc__
    return wrapped


def _outside_code(func: Callable[[str], str]) -> Callable[[str], str]:
    def wrapped(text: str) -> str:
        if not text:
            return text
        return _plain_segments(
            text, _FENCED_RE,
            lambda seg: _plain_segments(seg, _INLINE_CODE_RE, func),
        )
    wrapped.__name__ = func.__name__
    wrapped.__doc__ = func.__doc__
    return wrapped


def _is_table_row(line: str) -> bool:
    stripped = line.strip()
    if "\t" not in stripped and "  " not in stripped:
        return False
    cells = [c for c in _CELL_SPLIT_RE.split(stripped) if c]
    return len(cells) >= 2 and all(len(c) <= MAX_CELL_LENGTH for c in cells)


@_outside_fences
def fence_tables(text: str) -> str:
    """Fence runs of two or more tab/multi-space delimited lines."""
    lines = text.split("\n")
    out: List[str] = []
    run: List[str] = []

    def flush():
        if len(run) >= 2:
            out.append(TABLE_FENCE_OPEN)
            for row in run:
                out.append(" | ".join(c for c in _CELL_SPLIT_RE.split(row.strip()) if c))
            out.append(FENCE_CLOSE)
        else:
            out.extend(run)
        run.clear()

    for line in lines:
        if _is_table_row(line):
            run.append(line)
        else:
            flush()
            out.append(line)
    flush()
    return "\n".join(out)


@_outside_fences
def collapse_whitespace(text: str) -> str:
    lines = [_HSPACE_RE.sub(" ", line).strip() for line in text.split("\n")]
    return _BLANK_RUN_RE.sub("\n\n", "\n".join(lines))


@_outside_code
def insert_paragraph_breaks(text: str) -> str:
    """Blank line after sentence-ending punctuation followed by a capital."""
    return _SENTENCE_BREAK_RE.sub("\n\n", text)


@_outside_code
def tag_section_headers(text: str) -> str:
    def repl(m):
        header = f"{m.group('kind').capitalize()} {m.group('num')}"
        rest = m.group("rest").strip()
        return f"## {header}: {rest}" if rest else f"## {header}"
    return _HEADER_RE.sub(repl, text)


@_outside_code
def tag_questions(text: str) -> str:
    def repl(m):
        num = m.group("qnum") or m.group("num")
        if num:
            return f"**{num}.** "
        return f"**({m.group('plet') or m.group('let')})** "
    return _QUESTION_RE.sub(repl, text)


@_outside_code
def tag_choices(text: str) -> str:
    def repl(m):
        opt = m.group("opt").lower().replace(" ", "")
        return "[Yes/No]" if opt == "yes/no" else "[True/False]"
    return _CHOICE_RE.sub(repl, text)


@_outside_code
def wrap_math(text: str) -> str:
    def repl(m):
        expr = m.group(0)
        if _DATE_RE.match(expr):
            return expr
        if "=" in expr or "^" in expr or (re.search(r"\d", expr) and re.search(r"[+*/]", expr)):
            return f"`{expr}`"
        return expr
    return _MATH_RE.sub(repl, text)


PASSES = (
    fence_tables,
    collapse_whitespace,
    insert_paragraph_breaks,
    tag_section_headers,
    tag_questions,
    tag_choices,
    wrap_math,
)


def format_extracted_text(text: str) -> str:
    if not text:
        return text
    for step in PASSES:
        text = step(text)
    return text.strip()
