"""Klondike move-validation rules.

Every function here is pure and total: it inspects the cards it is given and
answers with a boolean, never raising and never touching state. The store's
mutating actions are the only place that raises.
"""

from __future__ import annotations

from typing import Sequence, Union

from klondike.common import FOUNDATION_PILES, Card, GameState, create_deck, get_card_color

RankLike = Union[Card, int]


def _rank_of(value: RankLike) -> int:
    return value.rank if isinstance(value, Card) else int(value)


def is_rank_sequential(higher: RankLike, lower: RankLike) -> bool:
    """True when ``higher`` sits exactly one rank above ``lower``."""
    return _rank_of(higher) == _rank_of(lower) + 1


def are_colors_alternating(card1: Card, card2: Card) -> bool:
    return get_card_color(card1) != get_card_color(card2)


def is_valid_foundation_move(card: Card, foundation_pile: Sequence[Card]) -> bool:
    """Ace starts a foundation; afterwards same suit, ascending by one."""
    if not foundation_pile:
        return card.rank == 1
    top = foundation_pile[-1]
    return card.suit == top.suit and card.rank == top.rank + 1


def is_valid_run(cards: Sequence[Card]) -> bool:
    """True when each adjacent pair descends by one and alternates color."""
    for upper, lower in zip(cards, cards[1:]):
        if not is_rank_sequential(upper, lower) or not are_colors_alternating(upper, lower):
            return False
    return True


def is_valid_tableau_move(cards_to_move: Sequence[Card], target_column: Sequence[Card]) -> bool:
    """King on an empty column; otherwise alternating color, one rank below the top.

    The moved cards must themselves form a valid run.
    """
    if not cards_to_move:
        return False
    lead = cards_to_move[0]
    if not target_column:
        if lead.rank != 13:
            return False
    else:
        top = target_column[-1]
        if not are_colors_alternating(top, lead):
            return False
        if not is_rank_sequential(top, lead):
            return False
    return is_valid_run(cards_to_move)


def is_valid_tableau_to_foundation(card: Card, foundation_pile: Sequence[Card]) -> bool:
    return is_valid_foundation_move(card, foundation_pile)


def is_valid_waste_to_foundation(card: Card, foundation_pile: Sequence[Card]) -> bool:
    return is_valid_foundation_move(card, foundation_pile)


def is_valid_tableau_to_tableau(cards_to_move: Sequence[Card], target_column: Sequence[Card]) -> bool:
    return is_valid_tableau_move(cards_to_move, target_column)


def is_valid_waste_to_tableau(card: Card, target_column: Sequence[Card]) -> bool:
    return is_valid_tableau_move([card], target_column)


def can_flip_tableau_card(column: Sequence[Card], card_index: int) -> bool:
    # Only a face-down card on top of its column can be turned over
    if card_index < 0 or card_index >= len(column):
        return False
    if column[card_index].face_up:
        return False
    return card_index == len(column) - 1


def is_game_won(foundations: Sequence[Sequence[Card]]) -> bool:
    """All four foundations hold Ace through King in order."""
    if len(foundations) != FOUNDATION_PILES:
        return False
    for foundation in foundations:
        if len(foundation) != 13:
            return False
        for i, card in enumerate(foundation):
            if card.rank != i + 1:
                return False
    return True


_DECK_IDS = sorted(c.id for c in create_deck())


def is_deck_complete(state: GameState) -> bool:
    """Every card of the deck appears exactly once across all piles."""
    return sorted(c.id for c in state.all_cards()) == _DECK_IDS
