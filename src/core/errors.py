"""Exceptions raised by the obligation lifecycle operations."""

from __future__ import annotations


class ObligationValidationError(ValueError):
    """Raised when an obligation draft or update fails validation."""


class ObligationNotFound(LookupError):
    """Raised when an obligation id is unknown or not owned by the caller."""

    def __init__(self, owner_id: int, obligation_id: int) -> None:
        super().__init__(f"Obligation {obligation_id} not found for owner {owner_id}")
        self.owner_id = owner_id
        self.obligation_id = obligation_id
