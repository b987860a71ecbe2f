from __future__ import annotations

"""
groceries/models.py

Row and status-result shapes returned by the operations layer.
"""

from typing import Optional

from pydantic import BaseModel, Field


STATUS_OK = 1
STATUS_NOT_FOUND = 0


# ----------------------------
# Rows
# ----------------------------


class Account(BaseModel):
    id: int
    username: str = ""
    email: str = ""
    password: Optional[str] = None


class GroceryList(BaseModel):
    id: int
    name: str = ""
    sequence: int = Field(..., description="Order rank assigned at creation; never reassigned")
    account_id: Optional[int] = None


class Item(BaseModel):
    id: int
    name: str = ""
    price: float = 0.0
    sequence: int = Field(..., description="Order rank assigned at creation; never reassigned")
    list_id: Optional[int] = None


# ----------------------------
# Status results
# ----------------------------


class StatusResult(BaseModel):
    status_code: int = Field(..., description="1 = success, 0 = entity does not exist")
    status_message: str

    @property
    def ok(self) -> bool:
        return self.status_code == STATUS_OK


class DeleteResult(StatusResult):
    pass


class AccountUpsertResult(StatusResult):
    row: Optional[Account] = None


class ListUpsertResult(StatusResult):
    row: Optional[GroceryList] = None


class ItemUpsertResult(StatusResult):
    row: Optional[Item] = None
