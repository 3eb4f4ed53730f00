"""
Security utilities for sensitive data protection.

This module makes sure private keys, sealed key blobs, encryption secrets
and API credentials never reach logs or error responses.
"""

import logging
import re
from typing import Any, Literal, Optional

# Bare 0x-prefixed 32-byte hex is deliberately absent: transaction ids have
# that shape and the audit trail needs them.
SENSITIVE_PATTERNS = [
    # Sealed key blobs (nonce:tag:ciphertext, hex)
    (r'\b[a-f0-9]{24}:[a-f0-9]{32}:[a-f0-9]+\b', '***SEALED-KEY-REDACTED***'),
    # Named secrets in key=value or "key": "value" form
    (r'["\']?(private[_-]?key|encryption[_-]?secret|wallet[_-]?encryption[_-]?secret|secret[_-]?key|api[_-]?key|password)["\']?\s*[:=]\s*["\']?[^"\'\s,}]+["\']?', r'\1=***REDACTED***'),
    # API keys that look like: sk-...
    (r'sk-[a-zA-Z0-9\-_]{20,}', 'sk-***REDACTED***'),
    # Bearer tokens
    (r'Bearer [a-zA-Z0-9\-._~+/]+=*', 'Bearer ***REDACTED***'),
]

SENSITIVE_KEYS = {
    'private_key', 'privatekey', 'private-key',
    'encrypted_key', 'encryptedkey',
    'secret', 'password', 'api_key', 'apikey',
    'authorization', 'credentials',
}


class RedactingFormatter(logging.Formatter):
    """
    Logging formatter that redacts sensitive information.

    Intercepts formatted messages and replaces sensitive patterns with
    placeholders before the record is written.
    """

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        style: Literal['%', '{', '$'] = '%'
    ) -> None:
        """Initialize the redacting formatter."""
        super().__init__(fmt, datefmt, style)

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record with sensitive data redacted.

        Args:
            record: The log record to format

        Returns:
            Formatted log message with sensitive data redacted
        """
        return redact_string(super().format(record))


def redact_string(value: str) -> str:
    """
    Redact sensitive information from a string.

    Args:
        value: String to redact

    Returns:
        String with sensitive information redacted
    """
    for pattern, replacement in SENSITIVE_PATTERNS:
        value = re.sub(pattern, replacement, value, flags=re.IGNORECASE)
    return value


def redact_dict(data: dict[str, Any], additional_keys: Optional[set[str]] = None) -> dict[str, Any]:
    """
    Redact sensitive values from a dictionary.

    Args:
        data: Dictionary to redact
        additional_keys: Additional keys to redact beyond the default list

    Returns:
        Dictionary with sensitive values redacted
    """
    if not isinstance(data, dict):
        return data

    sensitive_keys = set(SENSITIVE_KEYS)
    if additional_keys:
        sensitive_keys.update(additional_keys)

    redacted: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in sensitive_keys):
            redacted[key] = "***REDACTED***"
        elif isinstance(value, dict):
            redacted[key] = redact_dict(value, additional_keys)
        elif isinstance(value, list):
            redacted[key] = [
                redact_dict(item, additional_keys) if isinstance(item, dict) else item
                for item in value
            ]
        elif isinstance(value, str):
            redacted[key] = redact_string(value)
        else:
            redacted[key] = value

    return redacted


def sanitize(data: Any) -> Any:
    """
    Sanitize data for logging by redacting sensitive information.

    Args:
        data: Any data structure to sanitize

    Returns:
        Sanitized version of the data
    """
    if isinstance(data, str):
        return redact_string(data)
    elif isinstance(data, dict):
        return redact_dict(data)
    elif isinstance(data, list):
        return [sanitize(item) for item in data]
    else:
        return data


def configure_secure_logging(
    level: str = "INFO",
    fmt: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
) -> logging.Logger:
    """
    Configure the root logger to use the redacting formatter.

    Called once at application startup so that every log line passes
    through redaction.

    Args:
        level: Log level name
        fmt: Log record format

    Returns:
        The configured root logger
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(RedactingFormatter(fmt=fmt, datefmt='%Y-%m-%d %H:%M:%S'))
    root_logger.addHandler(console_handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    return root_logger
