# controls.py - new game / reset / win message lifecycle, plus the move handlers
from __future__ import annotations

import logging
import random
from collections import deque
from typing import Deque, Optional, Tuple

from klondike import common as C
from klondike import rules
from klondike.interaction import DragData, DropTarget
from klondike.stock import StockPile
from klondike.store import GameStore, InvariantViolation

logger = logging.getLogger(__name__)

Snapshot = Tuple[C.GameState, int]


class GameActions:
    """Apply proposed moves and flips to the store.

    These are the handlers the interaction controller's ``on_card_move`` and
    ``on_card_flip`` callbacks are normally wired to. Every successful change
    records a snapshot so it can be undone.
    """

    def __init__(self, store: GameStore, stock_pile: Optional[StockPile] = None, *, history: int = 200) -> None:
        self.store = store
        self.stock_pile = stock_pile
        self.undo_stack: Deque[Snapshot] = deque(maxlen=history)

    # ---------- Undo ----------
    def snapshot(self) -> Snapshot:
        cycles = self.stock_pile.stock_cycles_used if self.stock_pile else 0
        return self.store.game_state, cycles

    def restore(self, snap: Snapshot) -> None:
        state, cycles = snap
        self.store.reset_game_state(state)
        if self.stock_pile:
            self.stock_pile.stock_cycles_used = cycles

    def push_undo(self) -> None:
        self.undo_stack.append(self.snapshot())

    def can_undo(self) -> bool:
        return len(self.undo_stack) > 0

    def undo(self) -> bool:
        if not self.undo_stack:
            return False
        self.restore(self.undo_stack.pop())
        return True

    def clear_history(self) -> None:
        self.undo_stack.clear()

    # ---------- Moves ----------
    def _source_cards(self, kind: str, index: Optional[int], count: int) -> Optional[C.Pile]:
        if kind == "waste":
            pile = self.store.waste
        elif kind == "tableau" and index is not None and 0 <= index < C.TABLEAU_COLUMNS:
            pile = self.store.tableau[index]
        elif kind == "foundation" and index is not None and 0 <= index < C.FOUNDATION_PILES:
            pile = self.store.foundations[index]
        else:
            return None
        if count > len(pile):
            return None
        return pile[len(pile) - count:]

    def move_cards(self, drag_data: DragData, drop_target: DropTarget) -> bool:
        """Move the dragged card(s) onto the drop target.

        Returns False, leaving the store untouched, when the move is not
        legal or the dragged cards are no longer on top of their source pile.
        """
        try:
            src_kind, src_index = C.parse_game_location(drag_data.source_location)
            dst_kind, dst_index = C.resolve_location(drop_target.location, drop_target.index)
        except ValueError:
            return False
        if (src_kind, src_index) == (dst_kind, dst_index):
            return False

        cards = drag_data.cards_to_move()
        on_top = self._source_cards(src_kind, src_index, len(cards))
        if on_top is None or [c.id for c in on_top] != [c.id for c in cards]:
            logger.debug("rejected move: %r is not on top of %s", cards, drag_data.source_location)
            return False
        # Use the cards as the store holds them, not the drag payload copies
        cards = on_top
        if not all(c.face_up for c in cards):
            return False

        if dst_kind == "foundation":
            if dst_index is None or not 0 <= dst_index < C.FOUNDATION_PILES or len(cards) != 1:
                return False
            if not rules.is_valid_foundation_move(cards[0], self.store.foundations[dst_index]):
                return False
        elif dst_kind == "tableau":
            if dst_index is None or not 0 <= dst_index < C.TABLEAU_COLUMNS:
                return False
            if not rules.is_valid_tableau_move(cards, self.store.tableau[dst_index]):
                return False
        else:
            return False

        snap = self.snapshot()
        try:
            with self.store.batch():
                self._remove_from_source(src_kind, src_index, cards)
                if dst_kind == "foundation":
                    self.store.add_card_to_foundation(dst_index, cards[0])
                else:
                    for card in cards:
                        self.store.add_card_to_tableau_column(dst_index, card)
        except InvariantViolation:
            self.restore(snap)
            raise
        self.undo_stack.append(snap)
        logger.debug("moved %r from %s to %s", cards, drag_data.source_location, drop_target.location)
        return True

    def _remove_from_source(self, kind: str, index: Optional[int], cards: C.Pile) -> None:
        if kind == "waste":
            self.store.remove_card_from_waste(count=len(cards))
        elif kind == "foundation":
            self.store.remove_card_from_foundation(index)
        else:
            for card in reversed(cards):
                self.store.remove_card_from_tableau_column(index, card.id)

    def flip_card(self, location: str, card_index: int) -> bool:
        """Turn over the face-down top card of a tableau column."""
        try:
            kind, col = C.parse_game_location(location)
        except ValueError:
            return False
        if kind != "tableau" or col is None or not 0 <= col < C.TABLEAU_COLUMNS:
            return False
        column = self.store.tableau[col]
        if not rules.can_flip_tableau_card(column, card_index):
            return False
        self.push_undo()
        self.store.flip_card_in_tableau(col, column[card_index].id)
        return True

    def click_stock(self) -> bool:
        if self.stock_pile is None:
            return False
        snap = self.snapshot()
        if not self.stock_pile.click():
            return False
        self.undo_stack.append(snap)
        return True

    # ---------- Auto finish ----------
    def can_autofinish(self) -> bool:
        """Eligible when stock and waste are empty and all tableau cards are face-up."""
        if self.store.stock or self.store.waste:
            return False
        return all(c.face_up for col in self.store.tableau for c in col)

    def find_next_auto_move(self) -> Optional[Tuple[int, int]]:
        """Find the next tableau->foundation move. Return (ti, fi) or None."""
        for ti, col in enumerate(self.store.tableau):
            if not col:
                continue
            card = col[-1]
            if not card.face_up:
                continue
            for fi, foundation in enumerate(self.store.foundations):
                if rules.is_valid_foundation_move(card, foundation):
                    return ti, fi
        return None

    def step_auto_finish(self) -> bool:
        nxt = self.find_next_auto_move()
        if nxt is None:
            return False
        ti, fi = nxt
        with self.store.batch():
            card = self.store.remove_card_from_tableau_column(ti)
            self.store.add_card_to_foundation(fi, card)
        return True

    def auto_finish(self) -> int:
        """Play every remaining card to the foundations. Returns the number of moves."""
        if not self.can_autofinish():
            return 0
        self.push_undo()
        moves = 0
        while self.step_auto_finish():
            moves += 1
        if moves == 0:
            self.undo_stack.pop()
        return moves


class GameControls:
    """New game, reset and the one-shot win message."""

    def __init__(
        self,
        store: GameStore,
        *,
        stock_pile: Optional[StockPile] = None,
        actions: Optional[GameActions] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.stock_pile = stock_pile
        self.actions = actions
        self.rng = rng
        self.game_id = 1
        self.show_win_message = False
        self._win_message_dismissed = False
        store.add_listener(self._on_state_changed)

    @property
    def game_state(self) -> C.GameState:
        return self.store.game_state

    @property
    def is_game_won(self) -> bool:
        return self.store.is_game_won

    def _on_state_changed(self, _state: C.GameState) -> None:
        self.check_for_win()

    def check_for_win(self) -> bool:
        if self.is_game_won and not self.show_win_message and not self._win_message_dismissed:
            self.show_win_message = True
            logger.info("game %d won", self.game_id)
        return self.show_win_message

    def _begin(self, state: Optional[C.GameState]) -> None:
        self.store.reset_game_state(state)
        self.show_win_message = False
        self._win_message_dismissed = False
        self.game_id += 1
        if self.stock_pile:
            self.stock_pile.reset_cycles()
        if self.actions:
            self.actions.clear_history()

    def start_new_game(self) -> None:
        self._begin(C.create_new_game_state(self.rng))
        logger.debug("started game %d", self.game_id)

    def reset_to_empty(self) -> None:
        self._begin(None)

    def dismiss_win_message(self) -> None:
        self.show_win_message = False
        self._win_message_dismissed = True

    def close(self) -> None:
        self.store.remove_listener(self._on_state_changed)
