"""
core/sanitize.py -- Screening for free-text fields an admin types into accounts.

Account names are echoed back to every admin page that lists users, so script
and markup fragments are refused outright and any remaining tags are stripped.

Quotes, semicolons and "--" are allowed: every query binds its parameters, and
names like O'Brien must keep working.
"""

from __future__ import annotations

import re

_UNSAFE = re.compile(r"<script|<iframe|javascript:|on\w+\s*=", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")


def is_input_safe(text: str) -> bool:
    """Return False if text carries a script tag, iframe, javascript: URL or inline handler."""
    return _UNSAFE.search(text) is None


def strip_tags(text: str) -> str:
    return _TAG.sub("", text).strip()
