from __future__ import annotations

from typing import Optional


class GroceriesError(Exception):
    pass


class UnknownKind(GroceriesError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown entity kind: {kind!r}")
        self.kind = kind


class IntegrityViolation(GroceriesError):
    """
    A write referenced an owner row that does not exist.

    Raised after the enclosing transaction has been rolled back, so nothing
    from the failed write is persisted.
    """

    def __init__(self, kind: str, owner_id: Optional[int], message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.owner_id = owner_id
