from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple, Union

from action.contracts import Record
from action.errors import TemplateError


@dataclass(frozen=True)
class _Field:
    name: str


_Segment = Union[str, _Field]


def parse_template(text: str) -> List[_Segment]:
    """Split a template into literal text and `{field}` placeholders.

    - `\\{` and `\\}` produce literal braces (the backslash is dropped).
    - A backslash before anything else is kept as-is.
    - A lone unescaped `}` is literal.
    - A `{` without a matching unescaped `}` raises TemplateError.
    """
    segments: List[_Segment] = []
    literal: List[str] = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch == "\\" and i + 1 < n and text[i + 1] in "{}":
            literal.append(text[i + 1])
            i += 2
            continue
        if ch != "{":
            literal.append(ch)
            i += 1
            continue

        name, end = _scan_field(text, i + 1)
        if literal:
            segments.append("".join(literal))
            literal = []
        segments.append(_Field(name))
        i = end + 1

    if literal:
        segments.append("".join(literal))
    return segments


def _scan_field(text: str, start: int) -> Tuple[str, int]:
    # Returns (field name, index of the closing brace)
    name: List[str] = []
    i = start
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text) and text[i + 1] in "{}":
            name.append(text[i + 1])
            i += 2
            continue
        if ch == "}":
            return "".join(name), i
        name.append(ch)
        i += 1
    raise TemplateError(f"No matching bracket for '{{' at position {start - 1}")


class TextMapper:
    """Renders records through a `{field}` template, e.g. "{title}\\n{link}"."""

    def __init__(self, text: str) -> None:
        self.text = text

    def map(self, record: Record) -> str:
        segments = parse_template(self.text)
        # Every lookup is resolved before joining; substituted values are never re-scanned.
        return "".join(seg if isinstance(seg, str) else record.get(seg.name, "") for seg in segments)

    def __repr__(self) -> str:
        return f"TextMapper(text={self.text!r})"


__all__ = ["TextMapper", "parse_template"]
