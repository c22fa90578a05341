
# common.py - shared card model, deck helpers and settings for the Klondike core
from __future__ import annotations

import json
import logging
import os
import random
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# --- Settings ---

_DEFAULT_SETTINGS: Dict[str, Any] = {
    "draw_count": 3,          # 1 | 3
    "long_press_ms": 500,
    "move_tolerance_px": 10,
    "haptic_ms": 50,
    "stock_cycles": None,     # None = unlimited recycles
}

_ENV_OVERRIDES = {
    "KLONDIKE_DRAW_COUNT": "draw_count",
    "KLONDIKE_LONG_PRESS_MS": "long_press_ms",
    "KLONDIKE_MOVE_TOLERANCE_PX": "move_tolerance_px",
    "KLONDIKE_HAPTIC_MS": "haptic_ms",
    "KLONDIKE_STOCK_CYCLES": "stock_cycles",
}

VALID_DRAW_COUNTS = (1, 3)

_CURRENT_SETTINGS: Dict[str, Any] = dict(_DEFAULT_SETTINGS)


def _settings_dir() -> str:
    # Prefer %APPDATA% on Windows, else ~/.klondike_core
    base = os.environ.get("APPDATA")
    if base:
        return os.path.join(base, "KlondikeCore")
    return os.path.join(os.path.expanduser("~"), ".klondike_core")


def _settings_path() -> str:
    return os.path.join(_settings_dir(), "settings.json")


def _coerce_setting(key: str, value: Any) -> Any:
    if key == "stock_cycles":
        if value is None or value == "" or str(value).lower() == "none":
            return None
        cycles = int(value)
        if cycles < 0:
            raise ValueError(f"stock_cycles must be non-negative, got {cycles}")
        return cycles
    number = int(value)
    if key == "draw_count" and number not in VALID_DRAW_COUNTS:
        raise ValueError(f"draw_count must be one of {VALID_DRAW_COUNTS}, got {number}")
    if number < 0:
        raise ValueError(f"{key} must be non-negative, got {number}")
    return number


def _merge(target: Dict[str, Any], values: Mapping[str, Any], source: str) -> None:
    for key in _DEFAULT_SETTINGS:
        if key not in values:
            continue
        try:
            target[key] = _coerce_setting(key, values[key])
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring %s setting %r from %s: %s", key, values[key], source, exc)


def get_current_settings() -> Dict[str, Any]:
    return dict(_CURRENT_SETTINGS)


def load_settings(path: Optional[str] = None, *, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Reload settings from defaults, the JSON settings file and the environment.

    Later sources win. A missing file is normal; an unreadable or malformed one
    is logged and skipped.
    """
    global _CURRENT_SETTINGS
    settings = dict(_DEFAULT_SETTINGS)
    path = path or _settings_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        data = None
    except (OSError, ValueError) as exc:
        logger.warning("Could not read settings from %s: %s", path, exc)
        data = None
    if isinstance(data, dict):
        _merge(settings, data, path)
    elif data is not None:
        logger.warning("Settings file %s must contain an object, got %s", path, type(data).__name__)

    env = os.environ if environ is None else environ
    env_values = {name: env[var] for var, name in _ENV_OVERRIDES.items() if env.get(var, "").strip()}
    _merge(settings, env_values, "environment")

    _CURRENT_SETTINGS = settings
    return get_current_settings()


def save_settings(new_values: Mapping[str, Any], path: Optional[str] = None) -> Dict[str, Any]:
    # Merge and write to disk
    for key in new_values:
        if key not in _DEFAULT_SETTINGS:
            raise KeyError(f"Unknown setting: {key}")
    coerced = {k: _coerce_setting(k, v) for k, v in new_values.items()}
    _CURRENT_SETTINGS.update(coerced)
    path = path or _settings_path()
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(_CURRENT_SETTINGS, f, indent=2)
    return get_current_settings()


# Load any persisted settings and apply now
load_settings()


# ---------- Cards ----------
SUITS: Tuple[str, ...] = ("hearts", "diamonds", "clubs", "spades")
RANKS: Tuple[int, ...] = tuple(range(1, 14))
RED_SUITS = ("hearts", "diamonds")

SUIT_SYMBOLS = {"hearts": "♥", "diamonds": "♦", "clubs": "♣", "spades": "♠"}
RANK_TO_TEXT = {1: "A", 11: "J", 12: "Q", 13: "K"}
for _r in range(2, 11):
    RANK_TO_TEXT[_r] = str(_r)

TABLEAU_COLUMNS = 7
FOUNDATION_PILES = 4

# Default surface size used to scale normalised finger coordinates
SCREEN_W, SCREEN_H = 1280, 800


def create_card_id(suit: str, rank: int) -> str:
    return f"{suit}-{rank}"


@dataclass(frozen=True)
class Card:
    suit: str
    rank: int
    face_up: bool = False

    @property
    def id(self) -> str:
        return create_card_id(self.suit, self.rank)

    def color(self) -> str:
        return "red" if self.suit in RED_SUITS else "black"

    def with_face(self, face_up: bool) -> "Card":
        if self.face_up == face_up:
            return self
        return replace(self, face_up=face_up)

    def flipped(self) -> "Card":
        return replace(self, face_up=not self.face_up)

    def __repr__(self):
        return f"{RANK_TO_TEXT.get(self.rank, self.rank)}{SUIT_SYMBOLS.get(self.suit, self.suit)}{'↑' if self.face_up else '↓'}"


Pile = Tuple[Card, ...]


@dataclass(frozen=True)
class GameState:
    """Read-only composition of the four pile groups."""

    tableau: Tuple[Pile, ...]
    foundations: Tuple[Pile, ...]
    stock: Pile
    waste: Pile

    def all_cards(self) -> List[Card]:
        cards: List[Card] = []
        for col in self.tableau:
            cards.extend(col)
        for pile in self.foundations:
            cards.extend(pile)
        cards.extend(self.stock)
        cards.extend(self.waste)
        return cards


def empty_game_state() -> GameState:
    return GameState(
        tableau=tuple(() for _ in range(TABLEAU_COLUMNS)),
        foundations=tuple(() for _ in range(FOUNDATION_PILES)),
        stock=(),
        waste=(),
    )


def get_card_color(card: Card) -> str:
    return card.color()


def is_red_card(card: Card) -> bool:
    return card.suit in RED_SUITS


def is_black_card(card: Card) -> bool:
    return not is_red_card(card)


def has_alternating_colors(card1: Card, card2: Card) -> bool:
    return is_red_card(card1) != is_red_card(card2)


def create_deck() -> List[Card]:
    """Return the standard 52-card deck, face down, ordered by suit then rank."""
    return [Card(suit, rank, False) for suit in SUITS for rank in RANKS]


def shuffle_deck(deck: Sequence[Card], rng: Optional[random.Random] = None) -> List[Card]:
    """Return a Fisher-Yates shuffled copy of ``deck``; the input is left untouched."""
    rng = rng or random
    shuffled = list(deck)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


# ---------- Locations ----------
# Piles are addressed as "stock", "waste", "foundation-<n>" or "tableau-<n>".

def parse_game_location(location: str) -> Tuple[str, Optional[int]]:
    if location in ("stock", "waste"):
        return location, None
    kind, sep, index_str = str(location).partition("-")
    try:
        index = int(index_str)
    except ValueError as exc:
        raise ValueError(f"Invalid location format: {location}") from exc
    if not sep or not kind:
        raise ValueError(f"Invalid location format: {location}")
    return kind, index


def create_game_location(kind: str, index: Optional[int] = None) -> str:
    if kind in ("stock", "waste"):
        return kind
    if index is None:
        raise ValueError(f"Index required for location type: {kind}")
    return f"{kind}-{index}"


def resolve_location(location: str, index: Optional[int] = None) -> Tuple[str, Optional[int]]:
    """Like :func:`parse_game_location`, but a bare "tableau" or "foundation"
    takes its pile number from ``index``."""
    if location in ("tableau", "foundation"):
        return location, index
    return parse_game_location(location)


# ---------- Deal ----------

def create_new_game_state(rng: Optional[random.Random] = None) -> GameState:
    """Deal a fresh Klondike layout.

    Column ``n`` receives ``n + 1`` cards with only the last one face up; the
    remaining 24 cards form the face-down stock. Foundations and waste start
    empty.
    """
    deck = shuffle_deck(create_deck(), rng)
    tableau = []
    pos = 0
    for col in range(TABLEAU_COLUMNS):
        column = []
        for row in range(col + 1):
            column.append(deck[pos].with_face(row == col))
            pos += 1
        tableau.append(tuple(column))
    stock = tuple(c.with_face(False) for c in deck[pos:])
    return GameState(
        tableau=tuple(tableau),
        foundations=tuple(() for _ in range(FOUNDATION_PILES)),
        stock=stock,
        waste=(),
    )


# ---------- Structural validation ----------

@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def is_valid_suit(value: Any) -> bool:
    return isinstance(value, str) and value in SUITS


def is_valid_rank(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 13


def validate_card(value: Any) -> ValidationResult:
    if not isinstance(value, Card):
        return ValidationResult(False, ["Card must be a Card instance"])
    errors = []
    if not is_valid_suit(value.suit):
        errors.append(f"Invalid suit: {value.suit}")
    if not is_valid_rank(value.rank):
        errors.append(f"Invalid rank: {value.rank}")
    if not isinstance(value.face_up, bool):
        errors.append("face_up must be a boolean")
    return ValidationResult(not errors, errors)


def validate_game_state(value: Any) -> ValidationResult:
    if isinstance(value, Mapping):
        get = value.get
    elif all(hasattr(value, k) for k in ("tableau", "foundations", "stock", "waste")):
        def get(key):
            return getattr(value, key)
    else:
        return ValidationResult(False, ["GameState must provide tableau, foundations, stock and waste"])

    errors = []
    tableau = get("tableau")
    foundations = get("foundations")
    if not isinstance(tableau, (list, tuple)):
        errors.append("tableau must be a sequence")
    elif len(tableau) != TABLEAU_COLUMNS:
        errors.append(f"tableau must have exactly {TABLEAU_COLUMNS} columns")
    elif not all(isinstance(col, (list, tuple)) for col in tableau):
        errors.append("every tableau column must be a sequence")
    if not isinstance(foundations, (list, tuple)):
        errors.append("foundations must be a sequence")
    elif len(foundations) != FOUNDATION_PILES:
        errors.append(f"foundations must have exactly {FOUNDATION_PILES} piles")
    elif not all(isinstance(pile, (list, tuple)) for pile in foundations):
        errors.append("every foundation must be a sequence")
    for key in ("stock", "waste"):
        if get(key) is None:
            errors.append(f"{key} is required")
        elif not isinstance(get(key), (list, tuple)):
            errors.append(f"{key} must be a sequence")
    return ValidationResult(not errors, errors)


# ---------- Move actions ----------
MOVE_TYPES: Tuple[str, ...] = ("MOVE_CARD", "FLIP_CARD", "DEAL_CARD", "RESET_STOCK")


@dataclass(frozen=True)
class MoveAction:
    """A recorded player action.

    ``payload`` may carry ``from``, ``to``, ``card_id`` and ``cards``.
    """

    type: str
    payload: Mapping[str, Any] = field(default_factory=dict)


def _action_fields(value: Any) -> Optional[Tuple[Any, Any]]:
    if isinstance(value, Mapping):
        return value.get("type"), value.get("payload")
    if isinstance(value, MoveAction):
        return value.type, value.payload
    return None


def is_move_action(value: Any) -> bool:
    fields_ = _action_fields(value)
    if fields_ is None:
        return False
    action_type, payload = fields_
    return action_type in MOVE_TYPES and isinstance(payload, Mapping)


def validate_move_action(value: Any) -> ValidationResult:
    fields_ = _action_fields(value)
    if fields_ is None:
        return ValidationResult(False, ["MoveAction must be a MoveAction or a mapping"])
    action_type, payload = fields_
    errors = []
    if not isinstance(action_type, str):
        errors.append("type must be a string")
    elif action_type not in MOVE_TYPES:
        errors.append(f"Invalid action type: {action_type}")
    if not isinstance(payload, Mapping):
        errors.append("payload must be a mapping")
    return ValidationResult(not errors, errors)
