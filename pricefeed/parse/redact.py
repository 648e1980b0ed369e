"""Redaction module to mask secrets in ledger errors and logs."""
import re
from typing import Any, Dict

# (pattern, replacement) applied in order
PATTERNS = [
    (r'(Authorization["\']?\s*[:=]\s*["\']?)(Basic|Bearer)\s+[A-Za-z0-9+/=._-]+', r'\1\2 [REDACTED]'),
    (r'(apikey["\']?\s*[:=]\s*["\']?)[A-Za-z0-9._-]+', r'\1[REDACTED]'),
    (r'(cftpSID|ASP\.NET_SessionId|PHPSESSID|session)=([^;,\s"\']+)', r'\1=[REDACTED]'),
    (r'([?&]sig=)[^&\s"\']+', r'\1[REDACTED]'),
    (r'(password["\']?\s*[:=]\s*["\']?)[^"\'\s,&]+', r'\1[REDACTED]'),
    (r'eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+', '[REDACTED_JWT]'),
]

SECRET_KEYS = ("authorization", "password", "apikey", "service_role", "cookie", "token")


def redact_string(text: str) -> str:
    """Redact secrets from a string."""
    if not text:
        return text

    result = text
    for pattern, replacement in PATTERNS:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE)
    return result


def redact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively redact secrets from a dictionary."""
    if not isinstance(data, dict):
        return data

    redacted = {}
    for key, value in data.items():
        if any(secret in str(key).lower() for secret in SECRET_KEYS):
            redacted[key] = "[REDACTED]"
        else:
            redacted[key] = redact_json(value)
    return redacted


def redact_json(data: Any) -> Any:
    """Redact secrets from JSON-serializable data."""
    if isinstance(data, dict):
        return redact_dict(data)
    elif isinstance(data, list):
        return [redact_json(item) for item in data]
    elif isinstance(data, str):
        return redact_string(data)
    else:
        return data


def ledger_error(message: str, limit: int = 500) -> str:
    """Error text as stored in the ledger: redacted and truncated."""
    return redact_string(str(message))[:limit]
