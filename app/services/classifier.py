"""
Scan content classifier.

Maps decoded QR/barcode text to a semantic category used for display,
navigation and storage. Every function here is pure and total: any string,
including an empty one, gets a category and nothing is raised.
"""

import re
from enum import Enum
from typing import Optional

import validators


class ScanType(str, Enum):
    URL = "URL"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    TEXT = "TEXT"
    # Only assigned by the QR generation flow
    GENERATED = "GENERATED"


WEB_SCHEMES = ("http://", "https://")

PHONE_PATTERN = re.compile(
    r"(\+[0-9]+[\- \.]*)?"
    r"(\([0-9]+\)[\- \.]*)?"
    r"([0-9][0-9\- \.]+[0-9])"
)


def _is_web_url(candidate: str) -> bool:
    try:
        return bool(validators.url(candidate))
    except (ValueError, TypeError, UnicodeError):
        return False


def _is_email(candidate: str) -> bool:
    try:
        return bool(validators.email(candidate))
    except (ValueError, TypeError, UnicodeError):
        return False


def _strip_prefix(value: str, prefix: str) -> str:
    if value.lower().startswith(prefix):
        return value[len(prefix):]
    return value


def _url_candidate(raw: str) -> Optional[str]:
    """
    Return the URL a scan would navigate to, or None when it is not a web URL.
    A scheme-less value is tried again with http:// prepended.
    """
    value = raw.strip()
    lowered = value.lower()

    for scheme in WEB_SCHEMES:
        if lowered.startswith(scheme):
            candidate = scheme + value[len(scheme):]
            return candidate if _is_web_url(candidate) else None

    if not value:
        return None

    # user@host would otherwise pass as a URL with credentials
    authority = re.split(r"[/?#]", value, maxsplit=1)[0]
    if "@" in authority:
        return None

    candidate = "http://" + value
    return candidate if _is_web_url(candidate) else None


def classify(raw: str) -> ScanType:
    """
    Classify decoded text, first match wins:
    web URL (with or without scheme), email, phone number, plain text.
    """
    if not raw or not raw.strip():
        return ScanType.TEXT

    if _url_candidate(raw) is not None:
        return ScanType.URL

    value = raw.strip()

    email = _strip_prefix(value, "mailto:").split("?", 1)[0]
    if _is_email(email):
        return ScanType.EMAIL

    phone = _strip_prefix(value, "tel:")
    if PHONE_PATTERN.fullmatch(phone):
        return ScanType.PHONE

    return ScanType.TEXT


def navigation_url(raw: str) -> Optional[str]:
    """
    URL a client should open for this content.
    None means the content belongs in a copy/share dialog instead.
    """
    if not raw:
        return None
    return _url_candidate(raw)
