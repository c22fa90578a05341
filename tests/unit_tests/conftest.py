import pytest

from klondike import common as C


class FakeClock:
    def __init__(self, start: int = 0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def default_settings(tmp_path):
    C.load_settings(path=str(tmp_path / "missing.json"), environ={})
    yield
    C.load_settings(path=str(tmp_path / "missing.json"), environ={})


@pytest.fixture
def card():
    def _make(suit: str, rank: int, face_up: bool = True) -> C.Card:
        return C.Card(suit, rank, face_up)

    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def won_state():
    foundations = tuple(tuple(C.Card(s, r, True) for r in C.RANKS) for s in C.SUITS)
    return C.GameState(
        tableau=tuple(() for _ in range(C.TABLEAU_COLUMNS)),
        foundations=foundations,
        stock=(),
        waste=(),
    )
