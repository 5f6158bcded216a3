"""
Service / facade layer.

This module implements the ingest rules before any DB interaction. It is
intentionally free of SQL — it calls `EventRepo` to perform the writes.
The ingest route goes through this service so there is a single
security chokepoint and a single place that shapes stored documents.

Key responsibilities:
- check the shared device key
- build the sparse event document (optional states only when supplied)
- coerce `client_ts` to a number or null
- derive the latest state (confirmed > requested > nothing)
- order the writes: event first, projection second

Two requests for the same device are not serialized against each other;
`latest_state` ends up with whichever write the database applies last.
"""

import hmac
import logging
import math
from typing import Any, Dict, Optional
from models import DeviceEventIn
from repo_events import EventRepo, SERVER_TIMESTAMP
from settings import settings

logger = logging.getLogger(__name__)

BIGINT_MIN = -2**63
BIGINT_MAX = 2**63 - 1


def derive_latest(requested: Optional[str], confirmed: Optional[str]) -> Optional[str]:
    """Return the state to project: confirmed wins, then requested, else None."""

    if confirmed is not None:
        return confirmed
    if requested is not None:
        return requested
    return None


def normalize_client_ts(value: Any) -> Optional[int]:
    """Keep JSON numbers as whole milliseconds; anything else becomes None.

    Controllers send the timestamp as a double, so integral floats are
    common. Booleans are not numbers here even though `bool` subclasses
    `int`, and values that do not fit the BIGINT column are dropped.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value = int(value)
    if not isinstance(value, int):
        return None
    # events.client_ts is BIGINT
    if not BIGINT_MIN <= value <= BIGINT_MAX:
        return None
    return value


def build_event_doc(event: DeviceEventIn) -> Dict[str, Any]:
    """Sparse field mapping for the `events` row of this request.

    `source` and `client_ts` are always written (null when unknown).
    The state fields appear only when the caller sent them, so a retry
    without them cannot erase a stored value.
    """

    doc: Dict[str, Any] = {
        "device": event.device,
        "action": event.action,
        "source": event.source,
        "client_ts": normalize_client_ts(event.client_ts),
        "ts": SERVER_TIMESTAMP,
    }
    if event.requested_state is not None:
        doc["requested_state"] = event.requested_state
    if event.confirmed_state is not None:
        doc["confirmed_state"] = event.confirmed_state
    return doc


class EventService:
    """Ingest rules + write ordering.

    Example usage:
        repo = EventRepo()
        svc = EventService(repo)
        svc.ingest_event(event)
    """

    def __init__(self, repo: EventRepo):
        self.repo = repo

    def verify_api_key(self, presented: Optional[str]) -> bool:
        """Compare the presented key with the one configured secret.

        An unset secret or an absent key is always a mismatch.
        """

        expected = settings.ingest_api_key
        if not expected or not presented:
            return False
        return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))

    def ingest_event(self, event: DeviceEventIn) -> Optional[str]:
        """Persist one event and update the device projection if it has a state.

        Returns the projected state, or None when the projection was not
        touched. Store errors propagate to the caller unchanged.
        """

        self.repo.upsert_event(event.tx_id, build_event_doc(event))

        latest = derive_latest(event.requested_state, event.confirmed_state)
        if latest is not None:
            self.repo.upsert_latest_state(
                event.device, {"state": latest, "updated_at": SERVER_TIMESTAMP}
            )

        logger.info(
            "Ingested tx_id=%s device=%s action=%s latest=%s",
            event.tx_id, event.device, event.action, latest,
        )
        return latest

    def health_check(self) -> None:
        """Perform a lightweight DB ping via the repository."""

        self.repo.ping()
