import hashlib
import logging
from collections.abc import Mapping
from typing import Any

# Create the library logger
logger = logging.getLogger("dynapager")

# Add NullHandler to prevent "No handlers could be found" warnings
# if the application doesn't configure logging.
logger.addHandler(logging.NullHandler())


def _digest(value: Any) -> str:
    raw = bytes(value) if isinstance(value, (bytes, bytearray, memoryview)) else str(value).encode()
    return hashlib.sha256(raw).hexdigest()[:8]


def redact_key(key: Mapping[str, Any] | str | bytes | None) -> str:
    """
    Redacts sensitive key information for logging.
    hashes the values to allow correlation without revealing PII.
    """
    if key is None:
        return "<none>"
    try:
        if isinstance(key, Mapping):
            return str({k: _digest(v) for k, v in key.items()})
        return _digest(key)
    except Exception:
        return "<redaction_failed>"
