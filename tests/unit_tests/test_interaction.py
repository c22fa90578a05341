import pytest

from klondike import common as C
from klondike.interaction import IDLE_DRAG, IDLE_TOUCH, DragDropController, DropZone
from klondike.store import GameStore


@pytest.fixture
def store(card):
    store = GameStore()
    store.add_card_to_tableau_column(0, card("spades", 8))
    store.add_card_to_tableau_column(1, card("hearts", 7))
    store.add_card_to_tableau_column(2, card("clubs", 9, False))
    store.add_card_to_foundation(0, card("hearts", 1))
    return store


class Recorder:
    def __init__(self) -> None:
        self.moves = []
        self.flips = []
        self.pulses = []

    def move(self, drag_data, drop_target) -> None:
        self.moves.append((drag_data, drop_target))

    def flip(self, location, index) -> None:
        self.flips.append((location, index))

    def haptics(self, ms) -> None:
        self.pulses.append(ms)


@pytest.fixture
def rec():
    return Recorder()


@pytest.fixture
def controller(store, rec, clock):
    ctl = DragDropController(
        store,
        on_card_move=rec.move,
        on_card_flip=rec.flip,
        haptics=rec.haptics,
        clock=clock,
    )
    yield ctl
    ctl.teardown()


# ---------- Pointer path ----------

def test_pointer_drag_onto_valid_column(controller, rec, card) -> None:
    seven = card("hearts", 7)
    controller.on_drag_start(seven, "tableau-1", 0)
    assert controller.drag_state.is_dragging
    assert controller.drag_state.drop_target is None
    controller.on_drag_over("tableau-0", 0)
    assert controller.drag_state.drop_target.is_valid
    assert controller.on_drop("tableau-0", 0)
    assert controller.drag_state == IDLE_DRAG
    drag_data, target = rec.moves[0]
    assert drag_data.card == seven and drag_data.source_location == "tableau-1"
    assert target.location == "tableau-0" and target.is_valid


def test_pointer_drop_on_invalid_target_emits_nothing(controller, rec, card) -> None:
    controller.on_drag_start(card("hearts", 7), "tableau-1", 0)
    assert not controller.on_drop("tableau-2", 2)
    assert controller.drag_state == IDLE_DRAG
    assert rec.moves == []


def test_drag_end_cancels(controller, rec, card) -> None:
    controller.on_drag_start(card("hearts", 7), "tableau-1", 0)
    controller.on_drag_end()
    assert controller.drag_state == IDLE_DRAG
    assert not controller.on_drop("tableau-0", 0)
    assert rec.moves == []


def test_drag_over_when_idle_does_nothing(controller) -> None:
    controller.on_drag_over("tableau-0", 0)
    assert controller.drag_state == IDLE_DRAG


@pytest.mark.parametrize("location, index", [("tableau-1", 1), ("tableau", 1)])
def test_drop_on_own_pile_is_invalid(controller, card, location, index) -> None:
    controller.on_drag_start(card("hearts", 7), "tableau-1", 0)
    assert not controller.is_valid_drop(location, index)


def test_bare_location_uses_index(controller, card) -> None:
    controller.on_drag_start(card("hearts", 7), "tableau-1", 0)
    assert controller.is_valid_drop("tableau", 0)
    assert not controller.is_valid_drop("tableau", 2)


@pytest.mark.parametrize("location", ["stock", "waste", "bogus", "tableau-x", "tableau-9", "foundation-7"])
def test_unsupported_targets_are_invalid(controller, card, location) -> None:
    controller.on_drag_start(card("spades", 13), "waste", 0)
    assert not controller.is_valid_drop(location)


def test_foundation_drop(controller, card) -> None:
    controller.on_drag_start(card("hearts", 2), "waste", 0)
    assert controller.is_valid_drop("foundation-0", 0)
    assert not controller.is_valid_drop("foundation-1", 1)


def test_foundation_rejects_multi_card_drag(controller, card) -> None:
    run = [card("hearts", 2), card("spades", 1)]
    controller.on_drag_start(run[0], "tableau-4", 0, cards=run)
    assert not controller.is_valid_drop("foundation-0", 0)


def test_validation_follows_live_piles(controller, store, card) -> None:
    queen = card("diamonds", 12)
    controller.on_drag_start(queen, "waste", 0)
    assert not controller.is_valid_drop("tableau-3", 3)
    store.add_card_to_tableau_column(3, card("clubs", 13))
    assert controller.is_valid_drop("tableau-3", 3)


def test_is_valid_drop_when_idle(controller) -> None:
    assert not controller.is_valid_drop("tableau-0", 0)


def test_run_validation_uses_all_cards(controller, card) -> None:
    run = [card("hearts", 7), card("clubs", 6)]
    controller.on_drag_start(run[0], "tableau-5", 0, cards=run)
    assert controller.is_valid_drop("tableau-0", 0)
    broken = [card("hearts", 7), card("diamonds", 6)]
    controller.on_drag_start(broken[0], "tableau-5", 0, cards=broken)
    assert not controller.is_valid_drop("tableau-0", 0)


# ---------- Touch path ----------

def test_long_press_starts_drag_and_pulses_haptics(controller, rec, clock, card) -> None:
    seven = card("hearts", 7)
    controller.on_touch_start(100, 100, seven, "tableau-1", 0)
    assert controller.touch_state.is_touching
    assert not controller.drag_state.is_dragging
    clock.advance(499)
    controller.update()
    assert not controller.drag_state.is_dragging
    clock.advance(1)
    controller.update()
    assert controller.drag_state.is_dragging
    assert controller.long_press_fired
    assert rec.pulses == [50]
    controller.update()
    assert rec.pulses == [50]


def test_long_press_drag_drops_on_element_under_finger(store, rec, clock, card) -> None:
    controller = DragDropController(
        store,
        on_card_move=rec.move,
        on_card_flip=rec.flip,
        element_at=lambda x, y: DropZone("tableau-0", 0) if x > 200 else None,
        clock=clock,
    )
    controller.on_touch_start(100, 100, card("hearts", 7), "tableau-1", 0)
    clock.advance(600)
    controller.on_touch_move(105, 100)
    assert controller.drag_state.is_dragging
    assert controller.drag_state.drop_target is None
    controller.on_touch_move(300, 120)
    assert controller.drag_state.drop_target.is_valid
    assert controller.on_touch_end()
    assert controller.drag_state == IDLE_DRAG
    assert controller.touch_state == IDLE_TOUCH
    assert len(rec.moves) == 1
    assert rec.flips == []


def test_touch_end_polls_pending_long_press(controller, rec, clock, card) -> None:
    controller.on_touch_start(10, 10, card("hearts", 7), "tableau-1", 0)
    clock.advance(800)
    assert not controller.on_touch_end()
    assert rec.pulses == [50]
    assert rec.flips == []
    assert not controller.is_interacting


def test_moving_beyond_tolerance_cancels_long_press_then_taps(controller, rec, clock, card) -> None:
    controller.on_touch_start(100, 100, card("clubs", 9, False), "tableau-2", 0)
    controller.on_touch_move(111, 100)
    clock.advance(1000)
    controller.update()
    assert not controller.drag_state.is_dragging
    assert rec.pulses == []
    assert controller.on_touch_end()
    assert rec.flips == [("tableau-2", 0)]
    assert controller.touch_state == IDLE_TOUCH
    assert not controller.long_press_fired


def test_small_jitter_keeps_long_press(controller, clock, card) -> None:
    controller.on_touch_start(100, 100, card("hearts", 7), "tableau-1", 0)
    controller.on_touch_move(106, 108)
    clock.advance(500)
    controller.update()
    assert controller.drag_state.is_dragging
    assert controller.touch_state.touch_data.current_x == 106


def test_quick_tap_flips(controller, rec, clock, card) -> None:
    controller.on_touch_start(0, 0, card("clubs", 9, False), "tableau-2", 0)
    clock.advance(120)
    assert controller.on_touch_end()
    assert rec.flips == [("tableau-2", 0)]
    assert rec.moves == []


def test_tap_without_pile_index_emits_nothing(controller, rec, card) -> None:
    controller.on_touch_start(0, 0, card("hearts", 7), "waste", 0, element=DropZone("waste", None))
    assert not controller.on_touch_end()
    assert rec.flips == []


def test_touch_move_and_end_when_idle(controller, rec) -> None:
    controller.on_touch_move(10, 10)
    assert not controller.on_touch_end()
    assert controller.touch_state == IDLE_TOUCH
    assert rec.moves == [] and rec.flips == []


def test_new_touch_cancels_previous_timer(controller, rec, clock, card) -> None:
    controller.on_touch_start(0, 0, card("hearts", 7), "tableau-1", 0)
    clock.advance(400)
    controller.on_touch_start(0, 0, card("spades", 8), "tableau-0", 0)
    clock.advance(400)
    controller.update()
    assert not controller.drag_state.is_dragging
    clock.advance(100)
    controller.update()
    assert controller.drag_state.drag_data.card.id == "spades-8"
    assert rec.pulses == [50]


def test_second_touch_during_drag_returns_to_idle(controller, rec, clock, card) -> None:
    controller.on_touch_start(0, 0, card("hearts", 7), "tableau-1", 0)
    clock.advance(500)
    controller.update()
    assert controller.drag_state.is_dragging
    controller.on_touch_start(50, 50, card("clubs", 9, False), "tableau-2", 0)
    assert not controller.drag_state.is_dragging
    assert controller.on_touch_end()
    assert controller.drag_state == IDLE_DRAG
    assert controller.touch_state == IDLE_TOUCH
    assert rec.moves == []
    assert rec.flips == [("tableau-2", 0)]


def test_teardown_is_idempotent(controller, rec, clock, card) -> None:
    controller.on_touch_start(0, 0, card("hearts", 7), "tableau-1", 0)
    controller.teardown()
    controller.teardown()
    clock.advance(2000)
    controller.update()
    assert controller.drag_state == IDLE_DRAG
    assert controller.touch_state == IDLE_TOUCH
    assert rec.pulses == []


def test_settings_drive_defaults(monkeypatch, store, clock) -> None:
    monkeypatch.setattr(
        C, "_CURRENT_SETTINGS", dict(C.get_current_settings(), long_press_ms=300, haptic_ms=20, move_tolerance_px=4)
    )
    ctl = DragDropController(store, clock=clock)
    assert (ctl.long_press_ms, ctl.haptic_ms, ctl.move_tolerance_px) == (300, 20, 4)
    assert DragDropController(store, clock=clock, long_press_ms=900).long_press_ms == 900
