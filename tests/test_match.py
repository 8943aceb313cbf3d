"""Tests for flashcards/match.py -- the pairing minigame engine."""

import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from flashcards.card_types import MatchSide
from flashcards.match import MAX_PAIRS, MatchEngine, MatchOutcome
from flashcards.models import Card


class FakeTimer:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _cards(n):
    return [Card(id=f'c{i}', deck_id='d', front=f'front {i}', back=f'back {i}') for i in range(n)]


def _index_of(engine, side, pair_index):
    for i, tile in enumerate(engine.tiles(side)):
        if tile.pair_index == pair_index:
            return i
    raise AssertionError('tile not found')


def _wrong_back_for(engine, pair_index):
    for i, tile in enumerate(engine.back_tiles):
        if tile.pair_index != pair_index and not tile.matched:
            return i
    raise AssertionError('no unmatched tile')


def test_uses_at_most_eight_pairs():
    engine = MatchEngine(_cards(12), rng=random.Random(0))
    assert engine.pair_count == MAX_PAIRS
    assert {t.card_id for t in engine.front_tiles} == {f'c{i}' for i in range(8)}
    assert {t.card_id for t in engine.back_tiles} == {f'c{i}' for i in range(8)}


def test_small_deck_uses_all_cards():
    engine = MatchEngine(_cards(3), rng=random.Random(0))
    assert engine.pair_count == 3
    assert sorted(t.pair_index for t in engine.front_tiles) == [0, 1, 2]
    assert sorted(t.pair_index for t in engine.back_tiles) == [0, 1, 2]


def test_correct_pair_matches_in_either_order():
    engine = MatchEngine(_cards(3), rng=random.Random(1))
    front = _index_of(engine, MatchSide.FRONT, 0)
    back = _index_of(engine, MatchSide.BACK, 0)
    assert engine.select(MatchSide.FRONT, front) == MatchOutcome.SELECTED
    assert engine.select(MatchSide.BACK, back) == MatchOutcome.MATCHED
    assert engine.front_tiles[front].matched and engine.back_tiles[back].matched
    assert engine.selected == {MatchSide.FRONT: None, MatchSide.BACK: None}

    front = _index_of(engine, MatchSide.FRONT, 1)
    back = _index_of(engine, MatchSide.BACK, 1)
    assert engine.select('back', back) == MatchOutcome.SELECTED
    assert engine.select('front', front) == MatchOutcome.MATCHED


def test_reselecting_tile_deselects_it():
    engine = MatchEngine(_cards(3), rng=random.Random(2))
    assert engine.select('front', 0) == MatchOutcome.SELECTED
    assert engine.select('front', 0) == MatchOutcome.DESELECTED
    assert engine.selected[MatchSide.FRONT] is None


def test_selecting_other_front_tile_replaces_selection():
    engine = MatchEngine(_cards(3), rng=random.Random(2))
    engine.select('front', 0)
    assert engine.select('front', 1) == MatchOutcome.SELECTED
    assert engine.selected[MatchSide.FRONT] == 1


def test_mismatch_marks_wrong_until_cleared():
    engine = MatchEngine(_cards(3), rng=random.Random(3))
    front = _index_of(engine, MatchSide.FRONT, 0)
    back = _wrong_back_for(engine, 0)
    engine.select('front', front)
    assert engine.select('back', back) == MatchOutcome.MISMATCHED
    assert engine.front_tiles[front].wrong and engine.back_tiles[back].wrong
    assert engine.has_wrong

    engine.clear_wrong()
    assert not engine.has_wrong
    assert engine.selected == {MatchSide.FRONT: None, MatchSide.BACK: None}
    assert engine.matched_count == 0


def test_new_click_clears_pending_wrong_marks():
    engine = MatchEngine(_cards(3), rng=random.Random(3))
    engine.select('front', _index_of(engine, MatchSide.FRONT, 0))
    engine.select('back', _wrong_back_for(engine, 0))
    assert engine.select('front', _index_of(engine, MatchSide.FRONT, 1)) == MatchOutcome.SELECTED
    assert not engine.has_wrong


def test_matched_tiles_are_ignored():
    engine = MatchEngine(_cards(2), rng=random.Random(4))
    front = _index_of(engine, MatchSide.FRONT, 0)
    engine.select('front', front)
    engine.select('back', _index_of(engine, MatchSide.BACK, 0))
    assert engine.select('front', front) == MatchOutcome.IGNORED


def test_completion_stops_timer():
    timer = FakeTimer()
    engine = MatchEngine(_cards(2), rng=random.Random(5), clock=timer)
    timer.now = 103.5
    engine.select('front', _index_of(engine, MatchSide.FRONT, 0))
    assert engine.select('back', _index_of(engine, MatchSide.BACK, 0)) == MatchOutcome.MATCHED
    engine.select('front', _index_of(engine, MatchSide.FRONT, 1))
    assert engine.select('back', _index_of(engine, MatchSide.BACK, 1)) == MatchOutcome.COMPLETE
    assert engine.is_complete
    assert engine.matched_count == 4

    timer.now = 200.0
    assert engine.elapsed_seconds == pytest.approx(3.5)
    assert engine.select('front', 0) == MatchOutcome.IGNORED


def test_out_of_range_index_raises():
    engine = MatchEngine(_cards(2), rng=random.Random(0))
    with pytest.raises(ValueError):
        engine.select('front', 5)
    with pytest.raises(ValueError):
        engine.select('middle', 0)


def test_to_dict_shape():
    engine = MatchEngine(_cards(2), rng=random.Random(0))
    d = engine.to_dict()
    assert d['pair_count'] == 2
    assert d['matched_pairs'] == 0
    assert len(d['front_tiles']) == 2
    assert d['front_tiles'][0]['side'] == 'front'
    assert d['complete'] is False
