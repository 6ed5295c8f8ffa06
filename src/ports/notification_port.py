"""Push transport port — abstract interface for delivering alerts to a destination.

Core modules depend on this protocol, never on a specific messaging provider.
The destination is the opaque payload stored in the owner's push subscription.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol


class DeliveryResult(str, Enum):
    """Outcome of a single send attempt."""

    SUCCESS = "success"
    PERMANENT_FAILURE = "permanent_failure"  # destination is gone; purge it
    TRANSIENT_FAILURE = "transient_failure"  # next sweep will try again


class PushTransport(Protocol):
    """Abstract push transport used by the notification dispatcher."""

    async def send(self, destination: dict, message: dict) -> DeliveryResult: ...
