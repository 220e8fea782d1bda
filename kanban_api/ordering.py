"""Card ordering within columns.

Every column keeps its cards at ``order`` values ``0..n-1`` with no gaps or
duplicates. Each operation here shifts the affected siblings in bulk and then
writes the single card, inside one transaction and while holding the
in-process lock of every column it touches.
"""
from __future__ import annotations

import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from .errors import BadRequestError
from .models import Card
from .storage import Storage
from .utils import is_dense, normalize_card_fields

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
# entries disappear once no caller holds or waits on the lock
_column_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()


def _lock_for(column_id: str) -> threading.Lock:
    with _registry_lock:
        lock = _column_locks.get(column_id)
        if lock is None:
            lock = _column_locks[column_id] = threading.Lock()
        return lock


@contextmanager
def column_locks(*column_ids: str) -> Iterator[None]:
    """Hold the locks of ``column_ids``, always acquired in sorted order."""
    locks = [_lock_for(cid) for cid in sorted(set(column_ids))]
    for lock in locks:
        lock.acquire()
    try:
        yield
    finally:
        for lock in reversed(locks):
            lock.release()


def _assignment(item: Any) -> Tuple[str, int]:
    if isinstance(item, Mapping):
        card_id = item.get("id", item.get("cardId"))
        order = item.get("order")
    elif isinstance(item, (tuple, list)) and len(item) == 2:
        card_id, order = item
    else:
        raise BadRequestError("Each card order must be an object with 'id' and 'order'")
    if not isinstance(card_id, str) or not card_id:
        raise BadRequestError("Each card order needs a card id")
    if isinstance(order, bool) or not isinstance(order, int) or order < 0:
        raise BadRequestError("Card order must be a non-negative integer", {"cardId": card_id})
    return card_id, order


class OrderingEngine:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.storage = Storage(session)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    @contextmanager
    def _locked_card(self, card_id: str, owner_id: str, action: str, *column_ids: str) -> Iterator[Card]:
        # The card's column is only known after reading it, so re-read once the
        # lock is held and retry if a concurrent move got there first.
        card = self.storage.owned_card(card_id, owner_id, action)
        while True:
            source_id = card.column_id
            with column_locks(source_id, *column_ids):
                card = self.storage.owned_card(card_id, owner_id, action, refresh=True)
                if card.column_id == source_id:
                    yield card
                    return
            logger.debug("Card %s changed column while waiting for lock, retrying", card_id)

    def append(self, column_id: str, card_fields: Mapping[str, Any], owner_id: str) -> Card:
        """Create a card at the end of ``column_id``."""
        fields = normalize_card_fields(dict(card_fields))
        if not fields.get("title"):
            raise BadRequestError("Title is required")
        self.storage.owned_column(column_id, owner_id, "add cards to")
        with column_locks(column_id), self._transaction():
            column = self.storage.owned_column(column_id, owner_id, "add cards to")
            order = self.storage.count_cards(column.id)
            card = self.storage.add_card(column.id, owner_id, order, fields)
            card_id = card.id
        logger.info("Appended card %s to column %s at %d", card_id, column_id, order)
        return card

    def remove(self, card_id: str, owner_id: str) -> None:
        """Delete a card and close the gap it leaves in its column."""
        with self._locked_card(card_id, owner_id, "delete") as card, self._transaction():
            column_id, position = card.column_id, card.order
            self.storage.delete_card(card)
            shifted = self.storage.shift_orders(column_id, -1, above=position)
        logger.info("Removed card %s from column %s at %d", card_id, column_id, position)
        logger.debug("Shifted %d cards up in column %s", shifted, column_id)

    def reorder(self, column_id: str, assignments: Sequence[Any], owner_id: str) -> List[Card]:
        """Apply a complete new arrangement of a column's cards.

        ``assignments`` must list every card of the column exactly once and
        its ``order`` values must be exactly ``0..n-1``. Cards whose position
        does not change are left untouched.
        """
        self.storage.owned_column(column_id, owner_id, "reorder cards in")
        if not isinstance(assignments, list):
            raise BadRequestError("cardOrders must be an array")
        pairs = [_assignment(item) for item in assignments]
        with column_locks(column_id), self._transaction():
            column = self.storage.owned_column(column_id, owner_id, "reorder cards in")
            cards = {card.id: card for card in self.storage.list_cards(column.id)}
            self._check_arrangement(column.id, cards, pairs, owner_id)
            changed = 0
            for card_id, order in pairs:
                card = cards[card_id]
                if card.order != order:
                    self.storage.set_order(card, column.id, order)
                    changed += 1
            result = self.storage.list_cards(column.id)
        logger.info("Reordered column %s (%d of %d cards moved)", column_id, changed, len(pairs))
        return result

    def _check_arrangement(
        self,
        column_id: str,
        cards: Mapping[str, Card],
        pairs: Sequence[Tuple[str, int]],
        owner_id: str,
    ) -> None:
        seen = set()
        for card_id, _ in pairs:
            if card_id in seen:
                raise BadRequestError("Card listed more than once", {"cardId": card_id})
            seen.add(card_id)
            card = cards.get(card_id)
            if card is None:
                raise BadRequestError("Card does not belong to this column", {"cardId": card_id, "columnId": column_id})
            if card.owner != owner_id:
                raise BadRequestError("Card does not belong to the caller", {"cardId": card_id})
        missing = sorted(set(cards) - seen)
        if missing:
            raise BadRequestError("Every card in the column must be given an order", {"missing": missing})
        if not is_dense(order for _, order in pairs):
            raise BadRequestError(
                f"Orders must be exactly 0..{len(pairs) - 1} with no gaps or duplicates",
                {"columnId": column_id},
            )

    def move(
        self,
        card_id: str,
        destination_column_id: str,
        new_position: Optional[int],
        owner_id: str,
    ) -> Card:
        """Move a card to ``new_position`` in ``destination_column_id``.

        The position is clamped to the destination's bounds; ``None`` appends
        the card at the end. The destination may be the card's own column.
        """
        if new_position is not None and (isinstance(new_position, bool) or not isinstance(new_position, int)):
            raise BadRequestError("newPosition must be an integer")
        self.storage.owned_card(card_id, owner_id, "move")
        self.storage.owned_column(destination_column_id, owner_id, "add cards to")
        with self._locked_card(card_id, owner_id, "move", destination_column_id) as card, self._transaction():
            destination = self.storage.owned_column(destination_column_id, owner_id, "add cards to")
            source_id, old_position = card.column_id, card.order
            size = self.storage.count_cards(destination.id, exclude_id=card.id)
            position = size if new_position is None else max(0, min(new_position, size))
            closed = self.storage.shift_orders(source_id, -1, above=old_position, exclude_id=card.id)
            opened = self.storage.shift_orders(destination.id, 1, at_least=position, exclude_id=card.id)
            self.storage.set_order(card, destination.id, position)
        logger.info(
            "Moved card %s from column %s[%d] to column %s[%d]",
            card_id,
            source_id,
            old_position,
            destination_column_id,
            position,
        )
        logger.debug("Shifted %d source and %d destination cards", closed, opened)
        return card

    def integrity(self, column_id: str, owner_id: str) -> Dict[str, Any]:
        """Report whether a column's orders are currently dense."""
        column = self.storage.owned_column(column_id, owner_id, "view")
        orders = [card.order for card in self.storage.list_cards(column.id)]
        dense = is_dense(orders)
        if not dense:
            logger.warning("Column %s has non-dense orders: %s", column_id, orders)
        return {"columnId": column.id, "count": len(orders), "dense": dense}
