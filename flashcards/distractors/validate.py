"""Hard validation for generated distractors. Reject invalid; fall back to local options."""

from typing import Any, Tuple

MAX_OPTION_CHARS = 300


def validate_distractors(obj: Any, correct_answer: str, count: int = 3) -> Tuple[bool, str]:
    """
    Validate generator output. Returns (ok, reason).
    """
    if not isinstance(obj, list):
        return False, "not a list"
    if len(obj) != count:
        return False, f"expected {count} options, got {len(obj)}"
    correct = correct_answer.strip().lower()
    seen = set()
    for option in obj:
        if not isinstance(option, str) or not option.strip():
            return False, "empty or non-string option"
        text = option.strip()
        if len(text) > MAX_OPTION_CHARS:
            return False, "option too long"
        key = text.lower()
        if key == correct:
            return False, "option repeats the correct answer"
        if key in seen:
            return False, "duplicate option"
        seen.add(key)
    return True, ""
