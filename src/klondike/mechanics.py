from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import pygame

from klondike import common as C

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def default_clock() -> int:
    return pygame.time.get_ticks()


class LongPressTimer:
    """
    One-shot cancellable timer driven by polling.
    - start() arms the timer relative to the clock
    - poll() fires the callback once the delay has elapsed; owners call it from
      their frame update and before handling input
    - cancel() disarms; calling it again is harmless
    `fired` stays True after the callback ran, until the next start().
    """

    def __init__(self, delay_ms: int, callback: Callable[[], None], *, clock: Optional[Clock] = None):
        self.delay_ms = max(0, int(delay_ms))
        self._callback = callback
        self._clock = clock or default_clock
        self._started_at: Optional[int] = None
        self.fired: bool = False

    @property
    def armed(self) -> bool:
        return self._started_at is not None

    def start(self, now_ms: Optional[int] = None) -> None:
        self._started_at = self._clock() if now_ms is None else int(now_ms)
        self.fired = False

    def cancel(self) -> None:
        self._started_at = None

    def reset(self) -> None:
        self.cancel()
        self.fired = False

    def poll(self, now_ms: Optional[int] = None) -> bool:
        """Fire if due. Returns True only on the call that fired."""
        if self._started_at is None:
            return False
        now = self._clock() if now_ms is None else int(now_ms)
        if now - self._started_at < self.delay_ms:
            return False
        logger.debug("long-press timer fired after %d ms", now - self._started_at)
        self._started_at = None
        self.fired = True
        self._callback()
        return True


@dataclass(frozen=True)
class CardHit:
    """Result of a hit test on a draggable card."""

    card: C.Card
    location: str
    index: int
    cards: Optional[Tuple[C.Card, ...]] = None


class PointerEventRouter:
    """Translate pygame mouse and finger events into interaction-controller calls.

    ``hit_test(pos)`` returns a :class:`CardHit` for the card under a screen
    position (or None). ``drop_zone_at(pos)`` returns a
    :class:`klondike.interaction.DropZone` (or None). Mouse presses on a
    face-down card become flip requests through ``on_click``; presses on a
    face-up card start a pointer drag.
    """

    def __init__(
        self,
        controller,
        *,
        hit_test: Callable[[Tuple[int, int]], Optional[CardHit]],
        drop_zone_at: Callable[[Tuple[int, int]], object],
        surface_size: Optional[Callable[[], Sequence[int]]] = None,
        on_click: Optional[Callable[[str, int], None]] = None,
        button: int = 1,
    ) -> None:
        self.controller = controller
        self.hit_test = hit_test
        self.drop_zone_at = drop_zone_at
        self.surface_size = surface_size or (lambda: (C.SCREEN_W, C.SCREEN_H))
        self.on_click = on_click
        self.button = int(button)

    def _finger_pos(self, event) -> Tuple[int, int]:
        # Finger coordinates are normalised to 0..1
        w, h = self.surface_size()
        return int(event.x * w), int(event.y * h)

    def handle_event(self, event) -> bool:
        """Process a pygame event. Returns True when the event was consumed."""

        # SDL mirrors touches as mouse events; the finger path handles those
        if getattr(event, "touch", False) and event.type in (
            pygame.MOUSEBUTTONDOWN,
            pygame.MOUSEBUTTONUP,
            pygame.MOUSEMOTION,
        ):
            return False

        if event.type == pygame.MOUSEBUTTONDOWN and event.button == self.button:
            hit = self.hit_test(event.pos)
            if hit is None:
                return False
            if not hit.card.face_up:
                if self.on_click:
                    self.on_click(hit.location, hit.index)
                    return True
                return False
            self.controller.on_drag_start(hit.card, hit.location, hit.index, cards=hit.cards)
            return True

        if event.type == pygame.MOUSEMOTION and self.controller.drag_state.is_dragging:
            zone = self.drop_zone_at(event.pos)
            if zone is not None:
                self.controller.on_drag_over(zone.location, zone.index)
            return True

        if event.type == pygame.MOUSEBUTTONUP and event.button == self.button:
            if not self.controller.drag_state.is_dragging:
                return False
            zone = self.drop_zone_at(event.pos)
            if zone is None:
                self.controller.on_drag_end()
            else:
                self.controller.on_drop(zone.location, zone.index)
            return True

        if event.type == pygame.FINGERDOWN:
            pos = self._finger_pos(event)
            hit = self.hit_test(pos)
            if hit is None:
                return False
            self.controller.on_touch_start(pos[0], pos[1], hit.card, hit.location, hit.index, cards=hit.cards)
            return True

        if event.type == pygame.FINGERMOTION:
            if not self.controller.touch_state.is_touching:
                return False
            x, y = self._finger_pos(event)
            self.controller.on_touch_move(x, y)
            return True

        if event.type == pygame.FINGERUP:
            if not self.controller.touch_state.is_touching:
                return False
            self.controller.on_touch_end()
            return True

        return False

