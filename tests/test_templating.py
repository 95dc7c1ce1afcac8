import pytest

from app.core.exceptions import TemplateRenderError
from app.core.templating import extract_placeholders, render_template


def test_render_substitutes_every_token() -> None:
    assert render_template("Dear {{name}}, welcome to {{ course }}.", {"name": "Ana", "course": "ADS"}) == (
        "Dear Ana, welcome to ADS."
    )


def test_render_without_value_fails() -> None:
    with pytest.raises(TemplateRenderError) as exc_info:
        render_template("Dear {{name}}", {})
    assert "name" in exc_info.value.message


def test_blank_value_counts_as_missing() -> None:
    with pytest.raises(TemplateRenderError):
        render_template("Dear {{name}}", {"name": "   "})


def test_body_without_tokens_renders_unchanged() -> None:
    assert render_template("Plain text { not a token }", {}) == "Plain text { not a token }"


def test_extract_placeholders_in_order_without_duplicates() -> None:
    assert extract_placeholders("{{b}} {{a}} {{ b }}") == ["b", "a"]
    assert extract_placeholders("") == []
