from __future__ import annotations

import re

_HAS_NUMBER = re.compile(r"\d+\.")
_STEP_LINE = re.compile(r"^\s*(\d+)\.\s+(.+)$")
_INLINE_SPLIT = re.compile(r"\s+\d+\.\s+")
_NEWLINE = re.compile(r"\r?\n")


def _clean(text: str) -> str:
    s = (text or "").strip()
    if s.startswith('"'):
        s = s[1:]
    if s.endswith('"'):
        s = s[:-1]
    return s.strip()


def parse_steps(text: str) -> list[str]:
    """Split a protocol cell into its numbered instructions.

    "1. A\\n2. B" -> ["A", "B"]. Text without numbering is one step.
    Non-empty input never yields an empty list.
    """
    cleaned = _clean(text)
    if not cleaned:
        return []

    if not _HAS_NUMBER.search(cleaned):
        return [cleaned]

    steps: list[str] = []
    for line in _NEWLINE.split(cleaned):
        m = _STEP_LINE.match(line)
        if m:
            step = m.group(2).strip()
            if step:
                steps.append(step)
    if steps:
        return steps

    # Numbers embedded inline rather than one per line.
    steps = [frag.strip() for frag in _INLINE_SPLIT.split(cleaned)]
    steps = [s for s in steps if s]
    return steps or [cleaned]
