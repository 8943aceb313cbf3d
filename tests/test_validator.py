"""Tests for flashcards/validator.py -- answer scoring and multiple-choice options."""

import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from flashcards.card_types import AnswerValidation
from flashcards.validator import (
    STOP_WORDS,
    extract_keywords,
    generate_multiple_choice_options,
    get_validation_description,
    levenshtein_distance,
    validate_answer,
)


# ============================================================================
# Levenshtein
# ============================================================================

def test_levenshtein_known_distances():
    assert levenshtein_distance('kitten', 'sitting') == 3
    assert levenshtein_distance('', 'abc') == 3
    assert levenshtein_distance('abc', '') == 3
    assert levenshtein_distance('same', 'same') == 0
    assert levenshtein_distance('flaw', 'lawn') == 2


def test_levenshtein_symmetric():
    assert levenshtein_distance('paris', 'pairs') == levenshtein_distance('pairs', 'paris')


# ============================================================================
# Individual strategies
# ============================================================================

def test_exact_is_case_sensitive():
    assert validate_answer('Paris', 'Paris', AnswerValidation.EXACT).is_correct
    result = validate_answer('paris', 'Paris', AnswerValidation.EXACT)
    assert not result.is_correct
    assert result.similarity == 0.0


def test_case_insensitive_match():
    result = validate_answer('Paris', 'paris', AnswerValidation.CASE_INSENSITIVE)
    assert result.is_correct
    assert result.similarity == 1.0


def test_inputs_are_trimmed():
    assert validate_answer('  Paris \n', 'Paris', 'exact').is_correct


def test_typo_tolerant_similarity():
    result = validate_answer('Pari', 'Paris', AnswerValidation.TYPO_TOLERANT)
    assert result.similarity == pytest.approx(0.8)
    assert not result.is_correct


def test_typo_tolerant_accepts_small_typo():
    result = validate_answer('photosynthesys', 'photosynthesis', 'typo-tolerant')
    assert result.is_correct
    assert result.similarity == pytest.approx(1 - 1 / 14)


def test_typo_similarity_stays_in_range_when_lowercasing_grows_text():
    # 'İ'.lower() is two code points
    assert len('İİ'.lower()) == 4
    for validation in ('typo-tolerant', 'flexible'):
        result = validate_answer('İİ', 'ab', validation)
        assert not result.is_correct
        assert 0.0 <= result.similarity <= 1.0
    assert validate_answer('İİ', 'ab', 'typo-tolerant').similarity == 0.0


def test_keyword_partial_credit():
    result = validate_answer('it makes energy', 'The mitochondria produces energy', 'keyword')
    # keywords: mitochondria, produces, energy
    assert result.is_correct
    assert result.similarity == pytest.approx(1 / 3)


def test_keyword_no_match():
    result = validate_answer('no idea', 'The mitochondria produces energy', 'keyword')
    assert not result.is_correct
    assert result.similarity == 0.0


def test_keyword_falls_back_to_case_insensitive_without_keywords():
    # "the" and "and" are stop words, "of" is too short
    assert extract_keywords('The and of') == []
    assert validate_answer('THE AND OF', 'The and of', 'keyword').is_correct
    assert not validate_answer('the', 'The and of', 'keyword').is_correct


def test_stop_words_excluded():
    assert 'the' in STOP_WORDS
    assert extract_keywords('The cell wall with cellulose') == ['cell', 'wall', 'cellulose']


# ============================================================================
# Flexible
# ============================================================================

def test_flexible_accepts_case_difference():
    result = validate_answer('PARIS', 'paris')
    assert result.is_correct
    assert result.similarity == 1.0


def test_flexible_accepts_typo_that_strict_typo_rejects():
    result = validate_answer('Pari', 'Paris', AnswerValidation.FLEXIBLE)
    assert result.is_correct
    assert result.similarity == pytest.approx(0.8)


def test_flexible_falls_through_to_keyword():
    result = validate_answer('energy', 'The mitochondria produces energy', 'flexible')
    assert result.is_correct
    assert result.similarity == pytest.approx(1 / 3)


def test_flexible_reject_reports_best_similarity():
    result = validate_answer('dog', 'elephant', 'flexible')
    assert not result.is_correct
    assert 0.0 <= result.similarity < 0.75


@pytest.mark.parametrize('validation', list(AnswerValidation))
def test_empty_answer_always_wrong(validation):
    result = validate_answer('   ', 'anything', validation)
    assert not result.is_correct
    assert result.similarity == 0.0


def test_unknown_validation_type_raises():
    with pytest.raises(ValueError):
        validate_answer('a', 'a', 'fuzzy')


def test_every_type_has_description():
    descriptions = {get_validation_description(v) for v in AnswerValidation}
    assert len(descriptions) == len(AnswerValidation)
    assert get_validation_description('flexible') == 'Flexible matching (recommended)'


# ============================================================================
# Multiple choice
# ============================================================================

def test_options_include_correct_exactly_once():
    pool = ['Paris', 'paris', 'PARIS', 'Berlin', 'Rome', 'Madrid', 'Lisbon']
    for seed in range(20):
        options = generate_multiple_choice_options('Paris', pool, 4, rng=random.Random(seed))
        assert len(options) == 4
        assert [o.lower() for o in options].count('paris') == 1
        assert 'Paris' in options


def test_options_distinct():
    pool = ['Berlin', 'berlin', 'Rome', 'Rome']
    options = generate_multiple_choice_options('Paris', pool, 4, rng=random.Random(0))
    assert sorted(o.lower() for o in options) == ['berlin', 'paris', 'rome']


def test_options_shrink_with_small_pool():
    assert generate_multiple_choice_options('Paris', ['Rome'], 4) in (['Paris', 'Rome'], ['Rome', 'Paris'])


def test_options_empty_pool():
    assert generate_multiple_choice_options('Paris', [], 4) == ['Paris']
    assert generate_multiple_choice_options('Paris', ['paris'], 4) == ['Paris']


def test_options_seeded_reproducible():
    pool = ['a', 'b', 'c', 'd', 'e', 'f']
    first = generate_multiple_choice_options('x', pool, 4, rng=random.Random(3))
    second = generate_multiple_choice_options('x', pool, 4, rng=random.Random(3))
    assert first == second
