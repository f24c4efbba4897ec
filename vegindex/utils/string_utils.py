import hashlib
import json
import re
from datetime import datetime, timezone
from typing import Any


def get_current_timestamp() -> int:
    """
    Get current timestamp in seconds since Unix epoch.

    Returns:
        Current timestamp as integer seconds
    """
    return int(datetime.now(timezone.utc).timestamp())


def slugify(value: str) -> str:
    """
    Lowercase a name and replace every non-alphanumeric character with '-'.

    Args:
        value: Free-form name (e.g. an area name)

    Returns:
        Path-safe slug, e.g. 'Lote Norte #2' -> 'lote-norte--2'
    """
    return re.sub(r"[^a-zA-Z0-9]", "-", value).lower()


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def canonical_json(payload: Any) -> str:
    """JSON with sorted keys and no whitespace, stable across runs."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))
