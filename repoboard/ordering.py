"""
Card order model.

Cards in a column are ranked by a float `order`. A card dropped between
neighbours a < b gets (a + b) / 2; at the top it gets first - 1, at the
bottom last + 1, into an empty column 0. When the gap it would split is
below the compaction threshold the whole destination column is renumbered
0..n-1 in visual order instead.
"""
from typing import Dict, List, Optional, Tuple

from .errors import ValidationError
from .schema import Card

DEFAULT_COMPACTION_THRESHOLD = 1e-6


def rank_for_index(siblings: List[Card], dest_index: int) -> Tuple[float, bool]:
    """
    Rank for a card inserted at `dest_index` among `siblings`.

    `siblings` are the destination column's cards in visual order,
    excluding the card being moved. Returns (rank, gap) where gap is the
    distance between the two neighbours (inf at either end).
    """
    if dest_index < 0 or dest_index > len(siblings):
        raise ValidationError(
            f"Destination index {dest_index} out of range 0..{len(siblings)}"
        )
    if not siblings:
        return 0.0, float("inf")
    if dest_index == 0:
        return siblings[0].order - 1, float("inf")
    if dest_index == len(siblings):
        return siblings[-1].order + 1, float("inf")
    a = siblings[dest_index - 1].order
    b = siblings[dest_index].order
    return (a + b) / 2, b - a


def place(
    siblings: List[Card],
    card_id: str,
    dest_index: int,
    threshold: float = DEFAULT_COMPACTION_THRESHOLD,
) -> Dict[str, float]:
    """
    New order values needed to put `card_id` at `dest_index`.

    Usually a single entry for the moved card. When the gap is too narrow
    every card of the destination column (moved card included) gets a new
    integer rank.
    """
    rank, gap = rank_for_index(siblings, dest_index)
    if gap >= threshold and not _collides(siblings, rank):
        return {card_id: rank}
    ids = [c.card_id for c in siblings]
    ids.insert(dest_index, card_id)
    return compact_ids(ids)


def compact_ids(ids_in_order: List[str]) -> Dict[str, float]:
    """Integer ranks 0..n-1 for ids already in visual order."""
    return {card_id: float(i) for i, card_id in enumerate(ids_in_order)}


def compact(cards: List[Card]) -> Dict[str, float]:
    """Renumber cards (sorted by current rank) to 0..n-1."""
    ordered = sorted(cards, key=lambda c: (c.order, c.card_id))
    return compact_ids([c.card_id for c in ordered])


def current_index(cards_in_column: List[Card], card_id: str) -> Optional[int]:
    for i, card in enumerate(cards_in_column):
        if card.card_id == card_id:
            return i
    return None


def _collides(siblings: List[Card], rank: float) -> bool:
    # float midpoints can round onto a neighbour once the gap is tiny
    return any(c.order == rank for c in siblings)
