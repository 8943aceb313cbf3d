"""Match mode: pair each card's front with its back against the clock."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from flashcards.card_types import MatchSide
from flashcards.models import Card
from flashcards.scheduler import shuffle

MAX_PAIRS = 8


class MatchOutcome(str, Enum):
    SELECTED = "selected"
    DESELECTED = "deselected"
    MATCHED = "matched"
    MISMATCHED = "mismatched"  # both tiles marked wrong until clear_wrong()
    IGNORED = "ignored"
    COMPLETE = "complete"  # last pair matched


@dataclass
class MatchTile:
    side: MatchSide
    pair_index: int
    card_id: str
    text: str
    image: Optional[str] = None
    matched: bool = False
    wrong: bool = False

    def to_dict(self) -> Dict:
        return {
            'side': self.side.value,
            'pair_index': self.pair_index,
            'card_id': self.card_id,
            'text': self.text,
            'image': self.image,
            'matched': self.matched,
            'wrong': self.wrong,
        }


class MatchEngine:
    """
    Tile state for one match game.

    The first MAX_PAIRS cards become pairs. Front and back tiles are
    shuffled independently; a front and back tile match when they share
    a pair_index. Timing of the wrong-mark clear is left to the caller.
    """

    def __init__(self, cards: Sequence[Card], rng=None, clock: Callable[[], float] = time.monotonic):
        pairs = list(cards)[:MAX_PAIRS]
        self.clock = clock
        self.front_tiles: List[MatchTile] = shuffle(
            [MatchTile(MatchSide.FRONT, i, c.id, c.front, c.front_image) for i, c in enumerate(pairs)], rng)
        self.back_tiles: List[MatchTile] = shuffle(
            [MatchTile(MatchSide.BACK, i, c.id, c.back, c.back_image) for i, c in enumerate(pairs)], rng)
        self.selected: Dict[MatchSide, Optional[int]] = {MatchSide.FRONT: None, MatchSide.BACK: None}
        self.start_time = clock()
        self.end_time: Optional[float] = None

    @property
    def pair_count(self) -> int:
        return len(self.front_tiles)

    @property
    def matched_count(self) -> int:
        """Matched tiles on both sides."""
        return sum(1 for t in self.front_tiles + self.back_tiles if t.matched)

    @property
    def is_complete(self) -> bool:
        return self.matched_count == 2 * self.pair_count

    @property
    def has_wrong(self) -> bool:
        return any(t.wrong for t in self.front_tiles + self.back_tiles)

    @property
    def elapsed_seconds(self) -> float:
        end = self.end_time if self.end_time is not None else self.clock()
        return max(0.0, end - self.start_time)

    def tiles(self, side) -> List[MatchTile]:
        return self.front_tiles if MatchSide(side) == MatchSide.FRONT else self.back_tiles

    def select(self, side, index: int) -> MatchOutcome:
        """
        Select the tile at `index` on `side`.

        Raises ValueError for an unknown side or an index out of range.
        """
        side = MatchSide(side)
        tiles = self.tiles(side)
        if isinstance(index, bool) or not isinstance(index, int) or not (0 <= index < len(tiles)):
            raise ValueError(f"No {side.value} tile at index {index!r}")
        if self.is_complete or tiles[index].matched:
            return MatchOutcome.IGNORED

        # A new click ends the wrong-pair display early
        if self.has_wrong:
            self.clear_wrong()

        if self.selected[side] == index:
            self.selected[side] = None
            return MatchOutcome.DESELECTED
        self.selected[side] = index

        front_index = self.selected[MatchSide.FRONT]
        back_index = self.selected[MatchSide.BACK]
        if front_index is None or back_index is None:
            return MatchOutcome.SELECTED

        front = self.front_tiles[front_index]
        back = self.back_tiles[back_index]
        if front.pair_index != back.pair_index:
            front.wrong = True
            back.wrong = True
            return MatchOutcome.MISMATCHED

        front.matched = True
        back.matched = True
        self.selected = {MatchSide.FRONT: None, MatchSide.BACK: None}
        if self.is_complete:
            self.end_time = self.clock()
            return MatchOutcome.COMPLETE
        return MatchOutcome.MATCHED

    def clear_wrong(self) -> None:
        """Drop wrong marks and the selections that caused them."""
        for tile in self.front_tiles + self.back_tiles:
            tile.wrong = False
        self.selected = {MatchSide.FRONT: None, MatchSide.BACK: None}

    def to_dict(self) -> Dict:
        return {
            'front_tiles': [t.to_dict() for t in self.front_tiles],
            'back_tiles': [t.to_dict() for t in self.back_tiles],
            'selected_front': self.selected[MatchSide.FRONT],
            'selected_back': self.selected[MatchSide.BACK],
            'pair_count': self.pair_count,
            'matched_pairs': self.matched_count // 2,
            'elapsed_seconds': round(self.elapsed_seconds, 3),
            'complete': self.is_complete,
        }
