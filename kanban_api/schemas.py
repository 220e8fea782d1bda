from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None
    requestId: Optional[str] = None


class Health(BaseModel):
    status: str = "ok"


class Version(BaseModel):
    version: str


# === Columns ===


class ColumnIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=100)


class ColumnOut(BaseModel):
    id: str
    owner: str
    title: str
    createdAt: datetime
    updatedAt: datetime


class ColumnsPage(BaseModel):
    columns: list[ColumnOut]


class ColumnIntegrity(BaseModel):
    columnId: str
    count: int
    dense: bool


# === Cards ===


class CardIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    priority: Optional[str] = None
    dueDate: Optional[str] = None
    deadline: Optional[str] = None
    column: str = Field(
        min_length=1,
        validation_alias=AliasChoices("column", "columnId", "column_id", "colId", "col_id"),
    )


class CardPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    priority: Optional[str] = None
    dueDate: Optional[str] = None
    deadline: Optional[str] = None


class CardOrder(BaseModel):
    id: str
    order: int = Field(ge=0)


class CardReorder(BaseModel):
    columnId: str
    cardOrders: list[CardOrder]


class CardMove(BaseModel):
    newColumnId: str = Field(validation_alias=AliasChoices("newColumnId", "columnId"))
    newPosition: Optional[int] = None


class CardOut(BaseModel):
    id: str
    title: str
    description: Optional[str]
    priority: str
    dueDate: Optional[datetime]
    column: str
    owner: str
    order: int
    createdAt: datetime
    updatedAt: datetime
