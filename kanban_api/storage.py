from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from .errors import ForbiddenError, NotFoundError
from .models import Card, ColumnModel, now_utc


class Storage:
    """Data access for columns and cards over a SQLAlchemy session.

    Methods only stage changes on the session; committing is left to the
    caller so several calls can share one transaction.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    # === Column operations ===
    def create_column(self, owner: str, title: str) -> ColumnModel:
        column = ColumnModel(owner=owner, title=title.strip())
        self.session.add(column)
        self.session.flush()
        return column

    def get_column(self, column_id: str) -> Optional[ColumnModel]:
        return self.session.get(ColumnModel, column_id)

    def list_columns_for_user(self, owner: str) -> List[ColumnModel]:
        stmt = (
            select(ColumnModel)
            .where(ColumnModel.owner == owner)
            .order_by(ColumnModel.created_at, ColumnModel.id)
        )
        return list(self.session.scalars(stmt))

    def owned_column(self, column_id: str, owner: str, action: str = "access") -> ColumnModel:
        column = self.get_column(column_id)
        if column is None:
            raise NotFoundError("Column not found", {"columnId": column_id})
        if column.owner != owner:
            raise ForbiddenError(f"You do not have permission to {action} this column")
        return column

    def rename_column(self, column: ColumnModel, title: str) -> ColumnModel:
        column.title = title.strip()
        column.updated_at = now_utc()
        self.session.flush()
        return column

    def delete_column(self, column: ColumnModel) -> None:
        # remove column and its cards
        self.session.execute(
            delete(Card).where(Card.column_id == column.id).execution_options(synchronize_session="fetch")
        )
        self.session.delete(column)
        self.session.flush()

    # === Card operations ===
    def get_card(self, card_id: str, refresh: bool = False) -> Optional[Card]:
        return self.session.get(Card, card_id, populate_existing=refresh)

    def owned_card(self, card_id: str, owner: str, action: str = "access", refresh: bool = False) -> Card:
        card = self.get_card(card_id, refresh=refresh)
        if card is None:
            raise NotFoundError("Card not found", {"cardId": card_id})
        if card.owner != owner:
            raise ForbiddenError(f"You do not have permission to {action} this card")
        return card

    def list_cards(self, column_id: str) -> List[Card]:
        stmt = (
            select(Card)
            .where(Card.column_id == column_id)
            .order_by(Card.order, Card.created_at, Card.id)
        )
        return list(self.session.scalars(stmt))

    def count_cards(self, column_id: str, exclude_id: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(Card).where(Card.column_id == column_id)
        if exclude_id is not None:
            stmt = stmt.where(Card.id != exclude_id)
        return self.session.scalar(stmt) or 0

    def add_card(self, column_id: str, owner: str, order: int, fields: Dict[str, Any]) -> Card:
        card = Card(column_id=column_id, owner=owner, order=order, **fields)
        self.session.add(card)
        self.session.flush()
        return card

    def update_card(self, card: Card, fields: Dict[str, Any]) -> Card:
        for name, value in fields.items():
            setattr(card, name, value)
        card.updated_at = now_utc()
        self.session.flush()
        return card

    def delete_card(self, card: Card) -> None:
        self.session.delete(card)
        self.session.flush()

    def shift_orders(
        self,
        column_id: str,
        delta: int,
        *,
        above: Optional[int] = None,
        at_least: Optional[int] = None,
        exclude_id: Optional[str] = None,
    ) -> int:
        """Add ``delta`` to ``order`` of every matching card in a column.

        Cards match when ``order > above`` or ``order >= at_least`` (exactly
        one of the two must be given). Returns the number of cards shifted.
        """
        if (above is None) == (at_least is None):
            raise ValueError("exactly one of 'above' or 'at_least' is required")
        stmt = update(Card).where(Card.column_id == column_id)
        if above is not None:
            stmt = stmt.where(Card.order > above)
        else:
            stmt = stmt.where(Card.order >= at_least)
        if exclude_id is not None:
            stmt = stmt.where(Card.id != exclude_id)
        stmt = stmt.values(order=Card.order + delta, updated_at=now_utc())
        result = self.session.execute(stmt.execution_options(synchronize_session="fetch"))
        return result.rowcount

    def set_order(self, card: Card, column_id: str, order: int) -> Card:
        card.column_id = column_id
        card.order = order
        card.updated_at = now_utc()
        self.session.flush()
        return card
