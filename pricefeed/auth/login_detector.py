"""Detect login pages served where a catalog file was expected."""
import re
import logging

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


def is_gzip(data: bytes | None) -> bool:
    """Compressed-format signature check (two magic bytes)."""
    return bool(data) and len(data) > 2 and data[:2] == GZIP_MAGIC


def head_text(data: bytes | None, n: int = 300) -> str:
    """First n bytes decoded for diagnostics."""
    if not data:
        return ""
    return data[:n].decode("utf-8", errors="replace")


def is_login_page(response_html: str | None, final_url: str = "") -> bool:
    """
    Detect if a payload is a login/redirect page.
    Returns True if at least one condition is met:
    - final_url points at a login route
    - HTML contains a password field or a login form
    - HTML contains several weak login indicators
    """
    if final_url and "login" in final_url.lower():
        return True

    if not response_html:
        return False

    html_lower = response_html.lower()

    # Strong indicators
    login_indicators = [
        r'type=["\']password["\']',
        r'name=["\']password["\']',
        r'name=["\']username["\']',
        r'<form[^>]*login',
        r'id=["\']login["\']',
    ]
    for pattern in login_indicators:
        if re.search(pattern, html_lower, re.IGNORECASE):
            return True

    # Weak indicators (need multiple)
    weak_indicators = [
        "sign in",
        "login",
        "התחברות",
        "כניסה",
        "שם משתמש",
        "סיסמה",
    ]
    count = sum(1 for indicator in weak_indicators if indicator in html_lower)
    return count >= 2


def describe_non_gzip(data: bytes | None, final_url: str = "", n: int = 300) -> tuple[str, str]:
    """Ledger message and diagnostic head for a payload without the gzip signature."""
    head = head_text(data, n)
    stripped = head.lstrip().lower()
    if is_login_page(head, final_url):
        reason = "likely HTML login/redirect"
    elif stripped.startswith(("<!doctype html", "<html")):
        reason = "HTML page"
    elif not data:
        reason = "empty body"
    else:
        reason = "unknown content"
    message = f"Download returned non-gzip content ({reason}); first {n} bytes: {head!r}"
    return message, head
