"""Campaign template rendering.

Replaces ``{{ variable }}`` tokens with per-recipient values. Variable names
match case-insensitively and may carry whitespace inside the braces. Tokens
with no value are left untouched so authors can spot typos in test sends.
Rendering is plain text substitution: no escaping, no conditionals.
"""

import re

VARIABLE_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")

TEST_SUBJECT_PREFIX = "[TEST] "


def render(text: str | None, variables: dict[str, str]) -> str:
    """Render a single subject/body string."""
    if not text:
        return ""
    lookup = {key.lower(): value for key, value in variables.items()}

    def replace_var(match: re.Match) -> str:
        value = lookup.get(match.group(1).lower())
        if value is None:
            return match.group(0)
        return str(value)

    return VARIABLE_PATTERN.sub(replace_var, text)


def render_content(
    subject: str | None,
    html: str | None,
    text: str | None,
    variables: dict[str, str],
) -> tuple[str, str, str]:
    """Render subject, HTML and text bodies together."""
    return (
        render(subject, variables),
        render(html, variables),
        render(text, variables),
    )


def extract_variables(text: str | None) -> list[str]:
    """List distinct variable names used in text, in order of first use."""
    if not text:
        return []
    seen: list[str] = []
    for match in VARIABLE_PATTERN.finditer(text):
        name = match.group(1).lower()
        if name not in seen:
            seen.append(name)
    return seen


def recipient_variables(
    first_name: str | None,
    last_name: str | None,
    email: str,
) -> dict[str, str]:
    """Standard variables for a live send."""
    first = first_name or ""
    last = last_name or ""
    return {
        "first_name": first,
        "last_name": last,
        "email": email,
        "full_name": f"{first} {last}".strip(),
    }


def sample_variables(test_email: str) -> dict[str, str]:
    """Fixed sample values for a test send."""
    return {
        "first_name": "Test",
        "last_name": "User",
        "email": test_email,
        "full_name": "Test User",
        "company": "Test Company",
    }
