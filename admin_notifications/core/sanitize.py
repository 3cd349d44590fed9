"""Input sanitization utilities.

Notification titles and messages end up rendered inside the admin panel, so
markup and characters that could be interpreted as HTML are removed before a
value is accepted into the model.
"""

import re

MAX_TEXT_LENGTH = 500

_TAG_RE = re.compile(r"<[^>]*>")
_DANGEROUS_CHARS_RE = re.compile(r"[<>&\"']")
_ACTION_URL_RE = re.compile(r"^(/|https?://)")


def strip_control_chars(value: str) -> str:
    """Remove non-printable control characters (except newline, tab)."""
    if not value:
        return value
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value)


def sanitize_text(value: str, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Strip HTML tags and dangerous characters, then cap the length.

    Tags are removed first so that ``<b>bold</b>`` becomes ``bold`` rather
    than ``bbold/b``; stray ``<``, ``>``, ``&`` and quotes left afterwards are
    dropped outright.
    """
    if not value:
        return value
    text = _TAG_RE.sub("", value)
    text = _DANGEROUS_CHARS_RE.sub("", text)
    text = strip_control_chars(text).strip()
    return text[:max_length]


def truncate_text(value: str, max_length: int) -> str:
    """Shorten ``value`` to ``max_length`` characters, ending with an ellipsis."""
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


def is_valid_action_url(url: str | None) -> bool:
    """Accept internal-relative paths and absolute http(s) URLs only."""
    if not url or not isinstance(url, str):
        return False
    return bool(_ACTION_URL_RE.match(url))
