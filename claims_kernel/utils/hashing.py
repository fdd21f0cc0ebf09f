"""
Canonical JSON and SHA-256 helpers for the claim audit chain.

An audit event is re-verified long after it was written, from nothing but
its stored row, so both the payload and the event link go through the
same canonical encoding: sorted keys, no whitespace, and one fixed string
form per value type.
"""

import hashlib
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _encode_value(obj: Any) -> Any:
    """
    JSON form of the non-JSON values found in claim payloads.

    Raises:
        TypeError: For any other type.
    """
    if isinstance(obj, Decimal):
        # hours and rates: 7.50 and 7.5 encode alike, never in exponent form
        return format(obj.normalize(), "f")
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """Canonical JSON text for ``data``."""
    return json.dumps(
        data, sort_keys=True, separators=(",", ":"), default=_encode_value,
    )


def _sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    """SHA-256 of an audit payload's canonical JSON."""
    return _sha256_hex(canonicalize_json(payload))


def hash_audit_event(
    *,
    seq: int,
    entity_type: str,
    entity_id: UUID | str,
    action: str,
    actor_id: UUID | str,
    actor_role: str | None,
    occurred_at: datetime,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Chained hash of one audit event.

    Covers every stored column of the event except its own hash: position
    in the chain, the claim or document it is about, what happened, who
    did it in which role, when, the payload digest and the previous
    event's hash.  ``occurred_at`` is hashed as its UTC ISO form, which is
    what a round trip through the database gives back.
    """
    link = {
        "seq": seq,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "action": action,
        "actor_id": str(actor_id),
        "actor_role": actor_role,
        "occurred_at": occurred_at.astimezone(timezone.utc).isoformat(),
        "payload_hash": payload_hash,
        "prev_hash": prev_hash,
    }
    return _sha256_hex(canonicalize_json(link))
