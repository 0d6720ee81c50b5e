"""Name utilities for certificates."""

from __future__ import annotations

import re
from typing import Iterable, Optional

_WHITESPACE_RE = re.compile(r"\s+")

FALLBACK_PARTICIPANT_NAME = "Participant"


def _clean(value: Optional[str]) -> str:
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value)).strip()


def join_name_parts(parts: Iterable[Optional[str]]) -> str:
    """Join name parts with single spaces, omitting blanks."""

    return " ".join(cleaned for cleaned in (_clean(part) for part in parts) if cleaned)


def middle_initial(value: Optional[str]) -> str:
    """Return ``"Q."`` for ``"Quincy"`` or ``"Q"``; blank stays blank."""

    cleaned = _clean(value).rstrip(".")
    if not cleaned:
        return ""
    return f"{cleaned[0].upper()}."


def participant_display_name(user) -> str:
    """Resolve the name printed on a certificate.

    Prefix, first name, middle initial, last name and suffix are joined with
    single spaces. Users without any name fields fall back to the local part of
    their email address and finally to ``"Participant"``.
    """

    full = join_name_parts(
        (
            getattr(user, "prefix", None),
            getattr(user, "first_name", None),
            middle_initial(getattr(user, "middle_initial", None)),
            getattr(user, "last_name", None),
            getattr(user, "suffix", None),
        )
    )
    if full:
        return full
    email = _clean(getattr(user, "email", None))
    if email:
        local = email.split("@", 1)[0].strip()
        if local:
            return local
    return FALLBACK_PARTICIPANT_NAME
