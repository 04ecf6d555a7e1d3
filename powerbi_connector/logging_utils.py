"""
Power BI Connector - Secure Logging Utilities.

============================================================
PURPOSE
============================================================
Keeps credentials out of log output:
- Bearer tokens in Authorization headers
- Client secrets in identity provider form bodies
- Embed tokens in API responses

============================================================
"""

import re
from typing import Any, Dict, Mapping


# ============================================================
# SENSITIVE DATA PATTERNS
# ============================================================

SENSITIVE_HEADERS = {
    "authorization",
    "x-ms-client-secret",
    "cookie",
    "set-cookie",
}

SENSITIVE_PARAMS = {
    "client_secret",
    "clientsecret",
    "password",
    "secret",
    "token",
    "access_token",
    "refresh_token",
    "id_token",
    "assertion",
}

# JWTs: three base64url segments separated by dots
JWT_PATTERN = re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*")


# ============================================================
# MASKING FUNCTIONS
# ============================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only first few chars.

    Args:
        value: Value to mask
        show_chars: Number of chars to show at start

    Returns:
        Masked value
    """
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Mask sensitive headers."""
    if not headers:
        return {}

    masked = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            masked[key] = mask_value(str(value))
        else:
            masked[key] = value
    return masked


def mask_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    """Mask sensitive parameters, recursing into nested mappings."""
    if not params:
        return {}

    masked: Dict[str, Any] = {}
    for key, value in params.items():
        if key.lower() in SENSITIVE_PARAMS:
            masked[key] = mask_value(str(value)) if value else value
        elif isinstance(value, Mapping):
            masked[key] = mask_params(value)
        elif isinstance(value, str):
            masked[key] = mask_text(value)
        else:
            masked[key] = value
    return masked


def mask_text(text: str) -> str:
    """Replace anything that looks like a JWT in free text."""
    if not text:
        return text
    return JWT_PATTERN.sub("***JWT***", text)
