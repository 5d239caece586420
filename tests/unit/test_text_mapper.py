from __future__ import annotations

import pytest

from action.contracts import Record
from action.errors import TemplateError
from common.mapper import TextMapper


def test_substitutes_fields():
    rec = Record({"title": "A", "link": "B"})
    assert TextMapper("{title}\n{link}").map(rec) == "A\nB"


def test_escaped_braces_are_literal():
    rec = Record({"x": "1"})
    assert TextMapper("\\{x\\}").map(rec) == "{x}"
    assert TextMapper("\\{x\\} = {x}").map(rec) == "{x} = 1"


def test_unknown_field_renders_empty():
    assert TextMapper("[{missing}]").map(Record({"title": "A"})) == "[]"


def test_unmatched_open_bracket_raises():
    with pytest.raises(TemplateError):
        TextMapper("{title} and {link").map(Record({"title": "A"}))


def test_escaped_closing_bracket_does_not_close_placeholder():
    with pytest.raises(TemplateError):
        TextMapper("{title\\}").map(Record({"title": "A"}))


def test_replacement_values_are_not_rescanned():
    rec = Record({"title": "{link}", "link": "B"})
    assert TextMapper("{title}|{link}").map(rec) == "{link}|B"


def test_repeated_placeholders_and_plain_text():
    rec = Record({"t": "x"})
    assert TextMapper("{t}{t} no fields } here \\n").map(rec) == "xx no fields } here \\n"


def test_template_without_placeholders_is_unchanged():
    assert TextMapper("hello").map(Record()) == "hello"


def test_accepts_plain_mapping():
    assert TextMapper("{a}-{b}").map({"a": "1"}) == "1-"
