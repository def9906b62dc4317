"""
Audit Hashing
=============
Hash chaining over audit events.

The hash covers every field of the serialized event except the hash itself,
including ``previous_hash``, so editing, inserting or dropping an entry
breaks verification from that entry onwards.
"""

import hashlib
import json
from typing import List, Optional, Tuple

import structlog

from .models import AuditEvent

logger = structlog.get_logger(__name__)


def compute_event_hash(event: AuditEvent) -> str:
    """SHA-256 hex digest of ``event`` with its ``hash`` field left out."""
    body = event.to_dict()
    body.pop("hash", None)
    canonical = json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def verify_chain_integrity(events: List[AuditEvent]) -> Tuple[bool, Optional[int]]:
    """
    Verify a chain of events from one logger, in recording order.

    Returns:
        Tuple of (is_valid, first_invalid_index)
    """
    previous: Optional[AuditEvent] = None
    for index, event in enumerate(events):
        if event.hash != compute_event_hash(event):
            logger.warning("audit_chain_hash_mismatch", event_id=event.id, index=index)
            return False, index
        if previous is not None and event.previous_hash != previous.hash:
            logger.warning("audit_chain_link_broken", event_id=event.id, index=index)
            return False, index
        previous = event
    return True, None
