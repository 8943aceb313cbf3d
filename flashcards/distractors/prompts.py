"""Prompts for distractor generation. Small inputs only."""

from typing import Tuple

MAX_FIELD_CHARS = 600


def confusing_options(front: str, correct_answer: str, count: int) -> Tuple[str, str]:
    """
    Return (system_prompt, user_prompt) asking for `count` wrong answers.
    Card text is truncated to MAX_FIELD_CHARS per field.
    """
    front = front.strip()[:MAX_FIELD_CHARS]
    correct_answer = correct_answer.strip()[:MAX_FIELD_CHARS]

    system = (
        "You are an expert at creating educational multiple choice questions. "
        "You generate plausible but incorrect answers that test true understanding."
    )

    user = f"""Given this flashcard:
Question: {front}
Correct Answer: {correct_answer}

Generate {count} plausible but INCORRECT answers that would confuse someone learning this material. The wrong answers should:
1. Be related to the topic and seem reasonable
2. NOT be trivially different or obviously wrong
3. Test understanding rather than just memory
4. Be similar in format and length to the correct answer
5. Avoid simple negations or opposite meanings

Return ONLY a JSON array of {count} strings, nothing else. Example format: ["wrong answer 1", "wrong answer 2", "wrong answer 3"]"""

    return system, user
