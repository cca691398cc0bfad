"""Tamper-evident hash chain over a tenant's audit records.

Each record stores an HMAC-SHA256 of its own content plus the entry_hash of
the tenant's previous record. Editing a stored record, or deleting one from
the middle of the chain, breaks verification. Retention cleanup removes
the oldest records, so the first remaining record may point at a hash that
no longer exists; verification accepts it as the anchor.
"""

import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from ..clock import as_utc
from ..config import get_settings

GENESIS_HASH = "GENESIS"


def _chain_key() -> bytes:
    return get_settings().AUDIT_CHAIN_KEY.encode("utf-8")


def _canonical_timestamp(value) -> Optional[str]:
    # SQLite returns naive datetimes; hash a naive UTC rendering everywhere
    if value is None:
        return None
    return as_utc(value).replace(tzinfo=None).isoformat(timespec="microseconds")


def entry_payload(entry) -> Dict[str, Any]:
    """Fields of an AuditLog covered by its hash."""
    return {
        "tenant_id": entry.tenant_id,
        "actor_id": entry.actor_id,
        "target_id": entry.target_id,
        "action": entry.action,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "details": entry.details,
        "metadata": entry.metadata_json,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "created_at": _canonical_timestamp(entry.created_at),
    }


def compute_entry_hash(previous_hash: str, payload: Dict[str, Any], key: Optional[bytes] = None) -> str:
    """Compute the HMAC for one record.

    Args:
        previous_hash: entry_hash of the previous record (or GENESIS_HASH)
        payload: Output of entry_payload()
        key: HMAC key (defaults to AUDIT_CHAIN_KEY)

    Returns:
        Hex-encoded HMAC-SHA256
    """
    data = json.dumps(
        {"previous_hash": previous_hash, **payload},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hmac.new(key or _chain_key(), data.encode("utf-8"), hashlib.sha256).hexdigest()


@dataclass(frozen=True)
class ChainVerification:
    valid: bool
    checked: int
    first_invalid_id: Optional[int] = None


def verify_chain(entries: Sequence, key: Optional[bytes] = None) -> ChainVerification:
    """Verify records of one tenant, given in ascending id order.

    Returns:
        ChainVerification with the id of the first record whose hash or
        link does not match, if any
    """
    key = key or _chain_key()
    previous = None
    for index, entry in enumerate(entries):
        if previous is not None and entry.previous_hash != previous.entry_hash:
            return ChainVerification(False, index + 1, entry.id)

        expected = compute_entry_hash(entry.previous_hash, entry_payload(entry), key)
        if not hmac.compare_digest(expected, entry.entry_hash):
            return ChainVerification(False, index + 1, entry.id)
        previous = entry

    return ChainVerification(True, len(entries))
