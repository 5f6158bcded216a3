"""
Pydantic models used across the backend.

Only input shapes belong here. `DeviceEventIn` is validated by the ingest
route (not by FastAPI's body binding) so that the method and key gates run
before any body validation.

Guidelines:
- Keep models minimal and stable. Optional fields default to None and
    the service decides which of them reach the store.
"""

from pydantic import BaseModel, Field
from typing import Any, Optional

REQUIRED_FIELDS = ("device", "action", "tx_id")


class DeviceEventIn(BaseModel):
        """Input shape for a device state-change event.

        Fields:
        - `device`: free-form device identifier (`blinds`, `desk_led`).
        - `action`: command name (`TOGGLE`, `OPEN`, `ON`, ...).
        - `tx_id`: client idempotency key; also the event document key.
        - `requested_state`: state the sender asked for, if known.
        - `confirmed_state`: state the device reported, if known.
        - `client_ts`: sender clock in milliseconds. Kept as `Any` so that
          non-numeric values reach the service and are stored as null
          rather than rejected.
        - `source`: short tag of the sending node (`main-ttgo`).
        """

        device: str = Field(min_length=1)
        action: str = Field(min_length=1)
        tx_id: str = Field(min_length=1)
        requested_state: Optional[str] = None
        confirmed_state: Optional[str] = None
        client_ts: Any = None
        source: Optional[str] = None


def missing_required(body: dict) -> bool:
    """True when any of `device`, `action`, `tx_id` is absent or empty."""

    return any(not body.get(name) for name in REQUIRED_FIELDS)
