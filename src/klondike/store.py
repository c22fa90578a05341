"""Pile-based game-state store for Klondike.

The store owns four pile groups (tableau, foundations, stock, waste). Every
action validates its arguments first and raises :class:`InvariantViolation`
without touching state when they are wrong. Successful actions replace the
affected pile tuples wholesale, so a reader holding an old
:class:`~klondike.common.GameState` keeps seeing a consistent snapshot and
identity comparison is enough to detect change.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from klondike.common import (
    FOUNDATION_PILES,
    TABLEAU_COLUMNS,
    Card,
    GameState,
    Pile,
    empty_game_state,
    validate_game_state,
)
from klondike.rules import is_game_won

logger = logging.getLogger(__name__)

CardOrCards = Union[Card, Iterable[Card]]
StateListener = Callable[[GameState], None]


class InvariantViolation(ValueError):
    """A store action was asked to break a pile invariant."""


class MalformedState(ValueError):
    """An externally supplied game state has the wrong shape."""


def _as_cards(cards: CardOrCards) -> Tuple[Card, ...]:
    if isinstance(cards, Card):
        return (cards,)
    return tuple(cards)


def _replace_at(piles: Tuple[Pile, ...], index: int, pile: Pile) -> Tuple[Pile, ...]:
    return piles[:index] + (pile,) + piles[index + 1:]


def _index_of(pile: Pile, card_id: str) -> int:
    for i, card in enumerate(pile):
        if card.id == card_id:
            return i
    return -1


class GameStore:
    """Owns the Klondike piles and the actions allowed to change them."""

    def __init__(self, state: Optional[GameState] = None) -> None:
        empty = empty_game_state()
        self._tableau: Tuple[Pile, ...] = empty.tableau
        self._foundations: Tuple[Pile, ...] = empty.foundations
        self._stock: Pile = ()
        self._waste: Pile = ()
        self._listeners: List[StateListener] = []
        self._batch_depth = 0
        self._batch_dirty = False
        if state is not None:
            self.reset_game_state(state)

    # ---------- Reads ----------
    @property
    def tableau(self) -> Tuple[Pile, ...]:
        return self._tableau

    @property
    def foundations(self) -> Tuple[Pile, ...]:
        return self._foundations

    @property
    def stock(self) -> Pile:
        return self._stock

    @property
    def waste(self) -> Pile:
        return self._waste

    @property
    def game_state(self) -> GameState:
        return GameState(
            tableau=self._tableau,
            foundations=self._foundations,
            stock=self._stock,
            waste=self._waste,
        )

    @property
    def is_game_won(self) -> bool:
        return is_game_won(self._foundations)

    # ---------- Change notification ----------
    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @contextmanager
    def batch(self) -> Iterator["GameStore"]:
        """Group several actions so listeners hear about them once, at the end."""
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._batch_dirty:
                self._batch_dirty = False
                self._notify()

    def _changed(self, action: str, *args) -> None:
        logger.debug("store: " + action, *args)
        if self._batch_depth:
            self._batch_dirty = True
            return
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        state = self.game_state
        for listener in list(self._listeners):
            listener(state)

    # ---------- Tableau ----------
    def _check_column(self, column_index: int) -> Pile:
        if not isinstance(column_index, int) or not 0 <= column_index < TABLEAU_COLUMNS:
            raise InvariantViolation(f"Invalid column index: {column_index}")
        return self._tableau[column_index]

    def add_card_to_tableau_column(self, column_index: int, card: Card) -> None:
        column = self._check_column(column_index)
        self._tableau = _replace_at(self._tableau, column_index, column + (card,))
        self._changed("add %r to tableau-%d", card, column_index)

    def remove_card_from_tableau_column(self, column_index: int, card_id: Optional[str] = None) -> Card:
        """Remove the card ``card_id`` (or the top card) from a column and return it."""
        column = self._check_column(column_index)
        if not column:
            raise InvariantViolation("Cannot remove card from empty column")
        if card_id is None:
            pos = len(column) - 1
        else:
            pos = _index_of(column, card_id)
            if pos == -1:
                raise InvariantViolation(f"Card with id {card_id} not found in column {column_index}")
        removed = column[pos]
        self._tableau = _replace_at(self._tableau, column_index, column[:pos] + column[pos + 1:])
        self._changed("remove %r from tableau-%d", removed, column_index)
        return removed

    def flip_card_in_tableau(self, column_index: int, card_id: str) -> Card:
        column = self._check_column(column_index)
        pos = _index_of(column, card_id)
        if pos == -1:
            raise InvariantViolation(f"Card with id {card_id} not found in column {column_index}")
        flipped = column[pos].flipped()
        self._tableau = _replace_at(self._tableau, column_index, column[:pos] + (flipped,) + column[pos + 1:])
        self._changed("flip %r in tableau-%d", flipped, column_index)
        return flipped

    # ---------- Foundations ----------
    def _check_foundation(self, foundation_index: int) -> Pile:
        if not isinstance(foundation_index, int) or not 0 <= foundation_index < FOUNDATION_PILES:
            raise InvariantViolation(f"Invalid foundation index: {foundation_index}")
        return self._foundations[foundation_index]

    def add_card_to_foundation(self, foundation_index: int, card: Card) -> None:
        foundation = self._check_foundation(foundation_index)
        if not card.face_up:
            raise InvariantViolation("Only face-up cards can be added to foundations")
        if not foundation:
            if card.rank != 1:
                raise InvariantViolation("Only Aces can be placed on empty foundations")
        else:
            top = foundation[-1]
            if card.suit != top.suit:
                raise InvariantViolation("Card must be same suit as foundation")
            if card.rank != top.rank + 1:
                raise InvariantViolation(
                    f"Card rank must be exactly one higher than top card (expected {top.rank + 1}, got {card.rank})"
                )
        self._foundations = _replace_at(self._foundations, foundation_index, foundation + (card,))
        self._changed("add %r to foundation-%d", card, foundation_index)

    def remove_card_from_foundation(self, foundation_index: int) -> Card:
        foundation = self._check_foundation(foundation_index)
        if not foundation:
            raise InvariantViolation("Cannot remove card from empty foundation")
        removed = foundation[-1]
        self._foundations = _replace_at(self._foundations, foundation_index, foundation[:-1])
        self._changed("remove %r from foundation-%d", removed, foundation_index)
        return removed

    # ---------- Stock ----------
    def add_card_to_stock(self, cards: CardOrCards, face_down: Optional[bool] = None) -> None:
        added = _as_cards(cards)
        if face_down is not None:
            added = tuple(c.with_face(not face_down) for c in added)
        self._stock = self._stock + added
        self._changed("add %d card(s) to stock", len(added))

    def _take_from_top(self, pile: Pile, count: int, name: str, verb: str) -> Pile:
        if not pile:
            raise InvariantViolation(f"Cannot {verb} cards from empty {name}")
        if not isinstance(count, int) or count < 1:
            raise InvariantViolation(f"Card count must be a positive integer, got {count!r}")
        if count > len(pile):
            raise InvariantViolation(f"Cannot {verb} {count} cards from {name} with only {len(pile)} cards")
        return pile[:-count]

    def remove_card_from_stock(self, count: int = 1) -> Tuple[Card, ...]:
        """Remove ``count`` cards from the top of the stock and return them in pile order."""
        remaining = self._take_from_top(self._stock, count, "stock", "remove")
        removed = self._stock[len(remaining):]
        self._stock = remaining
        self._changed("remove %d card(s) from stock", count)
        return removed

    def deal_cards_from_stock(self, count: int = 1) -> Tuple[Card, ...]:
        remaining = self._take_from_top(self._stock, count, "stock", "deal")
        dealt = self._stock[len(remaining):]
        self._stock = remaining
        self._changed("deal %d card(s) from stock", count)
        return dealt

    def reset_stock(self, cards: Optional[Iterable[Card]] = None, face_down: Optional[bool] = None) -> None:
        if cards is None:
            self._stock = ()
        else:
            new_stock = _as_cards(cards)
            # face_down=False keeps the cards as given
            if face_down:
                new_stock = tuple(c.with_face(False) for c in new_stock)
            self._stock = new_stock
        self._changed("reset stock")

    # ---------- Waste ----------
    def add_card_to_waste(self, cards: CardOrCards) -> None:
        added = tuple(c.with_face(True) for c in _as_cards(cards))
        self._waste = self._waste + added
        self._changed("add %d card(s) to waste", len(added))

    def remove_card_from_waste(self, card_id: Optional[str] = None, count: int = 1) -> Tuple[Card, ...]:
        if not self._waste:
            raise InvariantViolation("Cannot remove cards from empty waste pile")
        if card_id is not None:
            pos = _index_of(self._waste, card_id)
            if pos == -1:
                raise InvariantViolation(f"Card with id {card_id} not found in waste pile")
            removed = (self._waste[pos],)
            self._waste = self._waste[:pos] + self._waste[pos + 1:]
        else:
            remaining = self._take_from_top(self._waste, count, "waste pile", "remove")
            removed = self._waste[len(remaining):]
            self._waste = remaining
        self._changed("remove %d card(s) from waste", len(removed))
        return removed

    def clear_waste(self, cards: Optional[Iterable[Card]] = None) -> None:
        self._waste = () if cards is None else tuple(c.with_face(True) for c in cards)
        self._changed("clear waste")

    # ---------- Whole state ----------
    def reset_game_state(self, new_state: Union[GameState, Mapping, None] = None) -> None:
        """Replace every pile at once.

        ``new_state`` may be a :class:`GameState` or a mapping with ``tableau``,
        ``foundations``, ``stock`` and ``waste``. Without it all piles are
        emptied. Structural problems raise :class:`MalformedState`.
        """
        if new_state is None:
            state = empty_game_state()
        else:
            result = validate_game_state(new_state)
            if not result.is_valid:
                raise MalformedState("Invalid game state: " + "; ".join(result.errors))
            if isinstance(new_state, Mapping):
                get = new_state.__getitem__
            else:
                def get(key):
                    return getattr(new_state, key)
            state = GameState(
                tableau=tuple(tuple(col) for col in get("tableau")),
                foundations=tuple(tuple(pile) for pile in get("foundations")),
                stock=tuple(get("stock")),
                waste=tuple(c.with_face(True) for c in get("waste")),
            )
        self._tableau = state.tableau
        self._foundations = state.foundations
        self._stock = state.stock
        self._waste = state.waste
        self._changed("reset game state")
