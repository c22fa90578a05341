"""Drag and touch interaction state machine.

Two small machines live here. ``DragState`` goes Idle -> Dragging -> Idle and
carries the cards being moved plus the current drop candidate. ``TouchState``
tracks one physical touch; a touch escalates into a drag only when it is held
still past the long-press delay. Both the pointer path and the touch path end
in the same place: a valid drop fires ``on_card_move(drag_data, drop_target)``.
A touch that never became a drag is a tap, which fires ``on_card_flip``
instead.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

from klondike import common as C
from klondike import rules
from klondike.mechanics import Clock, LongPressTimer, default_clock
from klondike.store import GameStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DragData:
    card: C.Card
    source_location: str
    source_index: int
    cards: Optional[Tuple[C.Card, ...]] = None

    def cards_to_move(self) -> Tuple[C.Card, ...]:
        return tuple(self.cards) if self.cards else (self.card,)


@dataclass(frozen=True)
class DropTarget:
    location: str
    index: Optional[int] = None
    is_valid: bool = False


@dataclass(frozen=True)
class DropZone:
    """Drop-zone metadata carried by an on-screen element."""

    location: Optional[str]
    index: Optional[int] = None


@dataclass(frozen=True)
class TouchData:
    start_x: float
    start_y: float
    current_x: float
    current_y: float
    element: Optional[DropZone]
    timestamp: int


@dataclass(frozen=True)
class DragState:
    is_dragging: bool = False
    drag_data: Optional[DragData] = None
    drop_target: Optional[DropTarget] = None


@dataclass(frozen=True)
class TouchState:
    is_touching: bool = False
    touch_data: Optional[TouchData] = None


IDLE_DRAG = DragState()
IDLE_TOUCH = TouchState()

MoveCallback = Callable[[DragData, DropTarget], None]
FlipCallback = Callable[[str, int], None]


class DragDropController:
    """Turns pointer and touch gestures into move and flip proposals.

    Collaborators are injected: ``on_card_move`` and ``on_card_flip`` receive
    the proposals, ``haptics(duration_ms)`` is pulsed when a long press starts
    a drag, ``element_at(x, y)`` resolves the drop zone under a touch point and
    ``clock()`` returns milliseconds. Drop validity is always checked against
    the store's live piles.
    """

    def __init__(
        self,
        store: GameStore,
        *,
        on_card_move: Optional[MoveCallback] = None,
        on_card_flip: Optional[FlipCallback] = None,
        haptics: Optional[Callable[[int], None]] = None,
        element_at: Optional[Callable[[float, float], Optional[DropZone]]] = None,
        clock: Optional[Clock] = None,
        long_press_ms: Optional[int] = None,
        move_tolerance_px: Optional[float] = None,
        haptic_ms: Optional[int] = None,
    ) -> None:
        settings = C.get_current_settings()
        self.store = store
        self.on_card_move = on_card_move
        self.on_card_flip = on_card_flip
        self.haptics = haptics
        self.element_at = element_at
        self._clock = clock or default_clock
        self.long_press_ms = settings["long_press_ms"] if long_press_ms is None else long_press_ms
        self.move_tolerance_px = settings["move_tolerance_px"] if move_tolerance_px is None else move_tolerance_px
        self.haptic_ms = settings["haptic_ms"] if haptic_ms is None else haptic_ms

        self.drag_state: DragState = IDLE_DRAG
        self.touch_state: TouchState = IDLE_TOUCH
        self._long_press = LongPressTimer(self.long_press_ms, self._on_long_press, clock=self._clock)
        self._pending_drag: Optional[DragData] = None

    @property
    def is_interacting(self) -> bool:
        return self.drag_state.is_dragging or self.touch_state.is_touching

    @property
    def long_press_fired(self) -> bool:
        return self._long_press.fired

    # ---------- Drag state transitions ----------
    def _start_drag(self, drag_data: DragData) -> None:
        self.drag_state = DragState(is_dragging=True, drag_data=drag_data, drop_target=None)
        logger.debug("drag started from %s[%s]: %r", drag_data.source_location, drag_data.source_index, drag_data.card)

    def _set_drop_target(self, drop_target: Optional[DropTarget]) -> None:
        self.drag_state = DragState(
            is_dragging=self.drag_state.is_dragging,
            drag_data=self.drag_state.drag_data,
            drop_target=drop_target,
        )

    def _end_drag(self) -> None:
        if self.drag_state.is_dragging:
            logger.debug("drag ended")
        self.drag_state = IDLE_DRAG

    def _end_touch(self) -> None:
        self.touch_state = IDLE_TOUCH

    # ---------- Validation ----------
    def _target_pile(self, kind: str, pile_index: Optional[int]) -> Optional[C.Pile]:
        if pile_index is None:
            return None
        piles = self.store.foundations if kind == "foundation" else self.store.tableau
        if not 0 <= pile_index < len(piles):
            return None
        return piles[pile_index]

    def is_valid_drop(self, location: str, index: Optional[int] = None) -> bool:
        """Would dropping the dragged cards on ``location`` be a legal move?"""
        drag_data = self.drag_state.drag_data
        if not self.drag_state.is_dragging or drag_data is None:
            return False
        if location == drag_data.source_location:
            return False
        try:
            kind, pile_index = C.resolve_location(location, index)
        except ValueError:
            return False
        if pile_index is not None and C.create_game_location(kind, pile_index) == drag_data.source_location:
            return False

        cards = drag_data.cards_to_move()
        if kind == "foundation":
            if len(cards) > 1:
                return False
            pile = self._target_pile(kind, pile_index)
            return pile is not None and rules.is_valid_foundation_move(cards[0], pile)
        if kind == "tableau":
            pile = self._target_pile(kind, pile_index)
            return pile is not None and rules.is_valid_tableau_move(cards, pile)
        # stock and waste only change through draw/recycle
        return False

    def _drop_target(self, location: str, index: Optional[int]) -> DropTarget:
        return DropTarget(location=location, index=index, is_valid=self.is_valid_drop(location, index))

    # ---------- Pointer path ----------
    def on_drag_start(
        self,
        card: C.Card,
        location: str,
        index: int,
        cards: Optional[Sequence[C.Card]] = None,
    ) -> None:
        self._start_drag(DragData(card, location, index, tuple(cards) if cards else None))

    def on_drag_over(self, location: str, index: Optional[int] = None) -> None:
        if not self.drag_state.is_dragging:
            return
        self._set_drop_target(self._drop_target(location, index))

    def on_drop(self, location: str, index: Optional[int] = None) -> bool:
        """Finish a pointer drag on ``location``. Returns True when a move was proposed."""
        drag_data = self.drag_state.drag_data
        if not self.drag_state.is_dragging or drag_data is None:
            return False
        target = self._drop_target(location, index)
        self._set_drop_target(target)
        self._end_drag()
        if target.is_valid:
            if self.on_card_move:
                self.on_card_move(drag_data, target)
            return True
        return False

    def on_drag_end(self) -> None:
        self._end_drag()

    # ---------- Touch path ----------
    def _now(self) -> int:
        return int(self._clock())

    def on_touch_start(
        self,
        x: float,
        y: float,
        card: C.Card,
        location: str,
        index: int,
        *,
        element: Optional[DropZone] = None,
        cards: Optional[Sequence[C.Card]] = None,
    ) -> None:
        # A new touch replaces whatever session was still open
        self._long_press.cancel()
        self._end_drag()
        now = self._now()
        if element is None:
            element = DropZone(location, index)
        self.touch_state = TouchState(
            is_touching=True,
            touch_data=TouchData(x, y, x, y, element, now),
        )
        self._pending_drag = DragData(card, location, index, tuple(cards) if cards else None)
        self._long_press.start(now)

    def _on_long_press(self) -> None:
        if not self.touch_state.is_touching or self._pending_drag is None:
            return
        self._start_drag(self._pending_drag)
        if self.haptics:
            self.haptics(self.haptic_ms)

    def update(self) -> None:
        """Advance time-driven state; call once per frame."""
        self._long_press.poll(self._now())

    def on_touch_move(self, x: float, y: float) -> None:
        touch_data = self.touch_state.touch_data
        if not self.touch_state.is_touching or touch_data is None:
            return
        self.update()

        distance = math.hypot(x - touch_data.start_x, y - touch_data.start_y)
        if distance > self.move_tolerance_px and self._long_press.armed:
            self._long_press.cancel()
            logger.debug("long press cancelled after moving %.1fpx", distance)

        self.touch_state = TouchState(
            is_touching=True,
            touch_data=TouchData(
                touch_data.start_x,
                touch_data.start_y,
                x,
                y,
                touch_data.element,
                touch_data.timestamp,
            ),
        )

        if self.drag_state.is_dragging and self.element_at is not None:
            zone = self.element_at(x, y)
            if zone is not None and zone.location:
                self._set_drop_target(self._drop_target(zone.location, zone.index))

    def on_touch_end(self) -> bool:
        """Finish the touch. Returns True when a move or flip was proposed."""
        if not self.touch_state.is_touching:
            return False
        self.update()
        self._long_press.cancel()
        proposed = False
        if self._long_press.fired:
            drag_data = self.drag_state.drag_data
            target = self.drag_state.drop_target
            self._end_drag()
            if drag_data is not None and target is not None and target.is_valid:
                if self.on_card_move:
                    self.on_card_move(drag_data, target)
                proposed = True
        else:
            touch_data = self.touch_state.touch_data
            element = touch_data.element if touch_data else None
            if element is not None and element.location and element.index is not None:
                if self.on_card_flip:
                    self.on_card_flip(element.location, element.index)
                proposed = True
        self._end_drag()
        self._end_touch()
        self._pending_drag = None
        self._long_press.reset()
        return proposed

    def teardown(self) -> None:
        """Cancel any armed timer and return both machines to idle. Safe to repeat."""
        self._long_press.reset()
        self._pending_drag = None
        self._end_drag()
        self._end_touch()
