from __future__ import annotations

import re

_EMAIL_MASK = re.compile(r"(.{2}).*(@.*)")


def mask_email(email: str | None) -> str | None:
    """
    "alice@example.com" -> "al***@example.com"
    """
    if not email:
        return email
    return _EMAIL_MASK.sub(r"\1***\2", email)
