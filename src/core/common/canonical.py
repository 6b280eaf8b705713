import hashlib
import json
from datetime import datetime
from decimal import Decimal
from typing import Any


def _canonical_default(value: Any) -> str:
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Unsupported canonical type: {type(value).__name__}")


def canonical_json(payload: Any) -> str:
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), default=_canonical_default
    )


def hash_canonical_payload(payload: Any) -> str:
    """Hash a payload so that equal values hash equally.

    Decimals are normalized first, so ``"1000"`` and ``"1000.00"`` amounts
    produce the same hash.
    """
    digest = hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()
    return f"sha256:{digest}"
