"""Free-text answer validation and multiple-choice option assembly."""

from typing import List, Sequence

from flashcards.card_types import AnswerValidation
from flashcards.models import ValidationResult
from flashcards.scheduler import shuffle


TYPO_THRESHOLD = 0.85
FLEXIBLE_TYPO_THRESHOLD = 0.75
MIN_KEYWORD_LENGTH = 3

# Common English words never treated as keywords
STOP_WORDS = frozenset(
    "the and for are but not you all can her was one our out day get has him his "
    "how its may new now old see two who boy did she too use way with this that "
    "from have they will what been more when your said each than them very were "
    "into just like some time".split()
)

VALIDATION_DESCRIPTIONS = {
    AnswerValidation.EXACT: 'Exact match required (case-sensitive)',
    AnswerValidation.CASE_INSENSITIVE: "Exact match (case doesn't matter)",
    AnswerValidation.TYPO_TOLERANT: 'Minor typos accepted',
    AnswerValidation.KEYWORD: 'Key word must be present',
    AnswerValidation.FLEXIBLE: 'Flexible matching (recommended)',
}


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit-cost insert, delete and substitute."""
    rows = len(b) + 1
    cols = len(a) + 1
    matrix = [[0] * cols for _ in range(rows)]
    for i in range(rows):
        matrix[i][0] = i
    for j in range(cols):
        matrix[0][j] = j

    for i in range(1, rows):
        for j in range(1, cols):
            if b[i - 1] == a[j - 1]:
                matrix[i][j] = matrix[i - 1][j - 1]
            else:
                matrix[i][j] = min(
                    matrix[i - 1][j - 1] + 1,  # substitution
                    matrix[i][j - 1] + 1,      # insertion
                    matrix[i - 1][j] + 1,      # deletion
                )
    return matrix[rows - 1][cols - 1]


def extract_keywords(text: str) -> List[str]:
    """Lowercased words of 3+ characters that are not stop words."""
    return [
        word for word in text.lower().split()
        if len(word) >= MIN_KEYWORD_LENGTH and word not in STOP_WORDS
    ]


def _exact(user: str, correct: str) -> ValidationResult:
    ok = user == correct
    return ValidationResult(ok, 1.0 if ok else 0.0)


def _case_insensitive(user: str, correct: str) -> ValidationResult:
    ok = user.lower() == correct.lower()
    return ValidationResult(ok, 1.0 if ok else 0.0)


def _typo_tolerant(user: str, correct: str, threshold: float = TYPO_THRESHOLD) -> ValidationResult:
    # Lowercasing can lengthen a string, so measure after it
    user, correct = user.lower(), correct.lower()
    distance = levenshtein_distance(user, correct)
    longest = max(len(user), len(correct))
    similarity = 1.0 - distance / longest if longest else 1.0
    return ValidationResult(similarity >= threshold, similarity)


def _keyword(user: str, correct: str) -> ValidationResult:
    keywords = extract_keywords(correct)
    if not keywords:
        return _case_insensitive(user, correct)
    user_lower = user.lower()
    matched = [kw for kw in keywords if kw in user_lower]
    return ValidationResult(len(matched) > 0, len(matched) / len(keywords))


def _flexible(user: str, correct: str) -> ValidationResult:
    if user.lower() == correct.lower():
        return ValidationResult(True, 1.0)

    typo = _typo_tolerant(user, correct)
    if typo.similarity >= FLEXIBLE_TYPO_THRESHOLD:
        return ValidationResult(True, typo.similarity)

    keyword = _keyword(user, correct)
    if keyword.is_correct:
        return keyword

    return ValidationResult(False, max(typo.similarity, keyword.similarity))


_STRATEGIES = {
    AnswerValidation.EXACT: _exact,
    AnswerValidation.CASE_INSENSITIVE: _case_insensitive,
    AnswerValidation.TYPO_TOLERANT: _typo_tolerant,
    AnswerValidation.KEYWORD: _keyword,
    AnswerValidation.FLEXIBLE: _flexible,
}


def validate_answer(
    user_answer: str,
    correct_answer: str,
    validation=AnswerValidation.FLEXIBLE,
) -> ValidationResult:
    """
    Judge a free-text answer against the reference answer.

    Both strings are trimmed first. An empty answer is always wrong with
    similarity 0, whatever the validation type.
    """
    strategy = _STRATEGIES[AnswerValidation(validation)]
    user = user_answer.strip()
    correct = correct_answer.strip()
    if not user:
        return ValidationResult(False, 0.0)
    return strategy(user, correct)


def generate_multiple_choice_options(
    correct_answer: str,
    all_answers: Sequence[str],
    count: int = 4,
    rng=None,
) -> List[str]:
    """
    Build a shuffled option list holding the correct answer exactly once.

    Distractors are drawn uniformly from all_answers, skipping anything
    equal to the correct answer ignoring case. With too few distractors the
    list is simply shorter.
    """
    correct_lower = correct_answer.lower()
    pool: List[str] = []
    seen = set()
    for answer in all_answers:
        key = answer.lower()
        if key == correct_lower or key in seen:
            continue
        seen.add(key)
        pool.append(answer)

    wrong = shuffle(pool, rng)[:max(count - 1, 0)]
    return shuffle(wrong + [correct_answer], rng)


def get_validation_description(validation) -> str:
    return VALIDATION_DESCRIPTIONS[AnswerValidation(validation)]
