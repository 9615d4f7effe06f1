"""Tests for campaign variable substitution."""

from app.services import template_renderer
from app.services.template_renderer import (
    extract_variables,
    recipient_variables,
    render,
    render_content,
    sample_variables,
)


def test_render_replaces_known_variables():
    result = render("Hello {{first_name}}!", {"first_name": "Ada"})
    assert result == "Hello Ada!"


def test_render_allows_whitespace_inside_braces():
    result = render("Hi {{  first_name }} / {{last_name  }}", {"first_name": "Ada", "last_name": "Lovelace"})
    assert result == "Hi Ada / Lovelace"


def test_render_matches_names_case_insensitively():
    assert render("{{FIRST_NAME}} {{First_Name}}", {"first_name": "Ada"}) == "Ada Ada"
    assert render("{{email}}", {"EMAIL": "ada@example.com"}) == "ada@example.com"


def test_render_leaves_unknown_tokens_verbatim():
    text = "Dear {{ nickname }}, see {{company}}"
    assert render(text, {"first_name": "Ada"}) == text


def test_render_handles_empty_input():
    assert render(None, {"first_name": "Ada"}) == ""
    assert render("", {"first_name": "Ada"}) == ""


def test_render_does_not_escape_html():
    result = render("<b>{{first_name}}</b>", {"first_name": "<i>Ada</i>"})
    assert result == "<b><i>Ada</i></b>"


def test_render_empty_value_replaces_token():
    assert render("Hi {{first_name}}.", {"first_name": ""}) == "Hi ."


def test_render_content_renders_all_parts():
    subject, html, text = render_content(
        "Hi {{first_name}}",
        "<p>{{full_name}}</p>",
        None,
        recipient_variables("Ada", "Lovelace", "ada@example.com"),
    )
    assert subject == "Hi Ada"
    assert html == "<p>Ada Lovelace</p>"
    assert text == ""


def test_recipient_variables_tolerates_missing_names():
    variables = recipient_variables(None, None, "x@example.com")
    assert variables == {
        "first_name": "",
        "last_name": "",
        "email": "x@example.com",
        "full_name": "",
    }


def test_sample_variables_for_test_send():
    variables = sample_variables("qa@example.com")
    assert variables["first_name"] == "Test"
    assert variables["last_name"] == "User"
    assert variables["full_name"] == "Test User"
    assert variables["company"] == "Test Company"
    assert variables["email"] == "qa@example.com"


def test_extract_variables_is_ordered_and_distinct():
    text = "{{ first_name }} {{email}} {{FIRST_NAME}} {{company}}"
    assert extract_variables(text) == ["first_name", "email", "company"]
    assert extract_variables(None) == []


def test_test_subject_prefix():
    assert template_renderer.TEST_SUBJECT_PREFIX == "[TEST] "


def test_text_without_tokens_is_unchanged():
    text = "Plain text with {single} braces and no variables"
    assert render(text, {"first_name": "Ada"}) == text
