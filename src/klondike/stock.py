# stock.py - draw-N and recycle semantics layered on the game store
from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple

from klondike import common as C
from klondike.store import GameStore

logger = logging.getLogger(__name__)


class StockPile:
    """Stock and waste behaviour for Klondike.

    ``draw_count`` is 1 or 3. ``stock_cycles`` limits how many times the waste
    may be turned back into the stock (None means unlimited). The optional
    ``on_stock_click`` callback fires once per successful draw or recycle.
    """

    def __init__(
        self,
        store: GameStore,
        draw_count: Optional[int] = None,
        *,
        on_stock_click: Optional[Callable[[], None]] = None,
        stock_cycles: Optional[int] = None,
    ) -> None:
        settings = C.get_current_settings()
        if draw_count is None:
            draw_count = settings["draw_count"]
        if draw_count not in C.VALID_DRAW_COUNTS:
            raise ValueError(f"draw_count must be one of {C.VALID_DRAW_COUNTS}, got {draw_count!r}")
        if stock_cycles is not None and stock_cycles < 0:
            raise ValueError(f"stock_cycles must be non-negative, got {stock_cycles}")
        self.store = store
        self.draw_count = draw_count
        self.on_stock_click = on_stock_click
        self.stock_cycles_allowed = stock_cycles
        self.stock_cycles_used = 0

    @property
    def stock(self) -> C.Pile:
        return self.store.stock

    @property
    def waste(self) -> C.Pile:
        return self.store.waste

    @property
    def can_draw_from_stock(self) -> bool:
        return len(self.store.stock) > 0

    @property
    def stock_cycles_left(self) -> Optional[int]:
        if self.stock_cycles_allowed is None:
            return None
        return max(0, self.stock_cycles_allowed - self.stock_cycles_used)

    @property
    def can_recycle_stock(self) -> bool:
        if self.store.stock or not self.store.waste:
            return False
        return self.stock_cycles_left != 0

    def get_top_waste_card(self) -> Optional[C.Card]:
        waste = self.store.waste
        return waste[-1] if waste else None

    def get_drawable_cards(self) -> Tuple[C.Card, ...]:
        """The cards the next draw would take, in the order they come off the stock."""
        stock = self.store.stock
        n = min(self.draw_count, len(stock))
        return tuple(reversed(stock[len(stock) - n:]))

    def draw_from_stock(self) -> Tuple[C.Card, ...]:
        """Move up to ``draw_count`` cards from the stock top to the waste, face up.

        Cards are turned one at a time, so the last one drawn ends up on top
        of the waste.
        """
        if not self.can_draw_from_stock:
            return ()
        drawn = self.get_drawable_cards()
        with self.store.batch():
            self.store.remove_card_from_stock(len(drawn))
            self.store.add_card_to_waste(drawn)
        logger.debug("drew %d card(s), %d left in stock", len(drawn), len(self.store.stock))
        if self.on_stock_click:
            self.on_stock_click()
        return self.store.waste[-len(drawn):]

    def recycle_stock(self) -> bool:
        """Turn the waste over into a fresh face-down stock.

        Reversing the waste means the next draws come out in the same order as
        before the recycle.
        """
        if not self.can_recycle_stock:
            return False
        new_stock = tuple(c.with_face(False) for c in reversed(self.store.waste))
        with self.store.batch():
            self.store.clear_waste()
            self.store.reset_stock(new_stock, face_down=True)
        self.stock_cycles_used += 1
        logger.debug("recycled %d card(s) into stock (cycle %d)", len(new_stock), self.stock_cycles_used)
        if self.on_stock_click:
            self.on_stock_click()
        return True

    def click(self) -> bool:
        # Stock click: draw when possible, otherwise turn the waste over
        if self.can_draw_from_stock:
            return bool(self.draw_from_stock())
        return self.recycle_stock()

    def reset_cycles(self) -> None:
        self.stock_cycles_used = 0
