"""
Confusing multiple-choice options for ai-quiz mode.

Order of preference: options cached on the card, freshly generated options
(cached back through the repository), then local options drawn from the
rest of the deck. Generation problems never surface to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from flashcards.card_types import OptionSource
from flashcards.distractors.provider import DistractorGenerationError, DistractorGenerator
from flashcards.distractors.validate import validate_distractors
from flashcards.models import Card
from flashcards.scheduler import shuffle
from flashcards.validator import generate_multiple_choice_options

logger = logging.getLogger("flashcards.distractors")

DISTRACTOR_COUNT = 3


@dataclass(frozen=True)
class ConfusingOptions:
    """Three wrong answers and where they came from."""
    options: List[str]
    source: OptionSource

    def to_dict(self) -> Dict:
        return {'options': list(self.options), 'source': self.source.value}


def build_options(correct_answer: str, distractors: Sequence[str], rng=None) -> List[str]:
    """Shuffle the correct answer in with its distractors."""
    return shuffle(list(distractors) + [correct_answer], rng)


class DistractorProvider:
    """
    Per-deck adapter around an optional DistractorGenerator.

    Only one generation request per card is outstanding at a time; later
    callers for the same card await the first request's result. Concurrent
    generator calls across cards are capped by `concurrency`.
    """

    def __init__(
        self,
        repository,
        generator: Optional[DistractorGenerator] = None,
        *,
        deck_id: str,
        deck_answers: Sequence[str] = (),
        rng=None,
        concurrency: int = 2,
    ):
        self.repository = repository
        self.generator = generator
        self.deck_id = deck_id
        self.deck_answers = list(deck_answers)
        self.rng = rng
        self.concurrency = max(1, concurrency)
        self._inflight: Dict[str, asyncio.Task] = {}
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._semaphore_loop = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        # A semaphore belongs to one event loop; rebuild it if the loop changed.
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self.concurrency)
            self._semaphore_loop = loop
        return self._semaphore

    async def get_confusing_options(self, card: Card, regenerate: bool = False) -> ConfusingOptions:
        cached = card.ai_generated_options
        if not regenerate and cached and len(cached) == DISTRACTOR_COUNT:
            return ConfusingOptions(list(cached), OptionSource.CACHED)

        if self.generator is not None:
            generated = await self._generate_shared(card)
            if generated is not None:
                card.ai_generated_options = list(generated)
                return ConfusingOptions(list(generated), OptionSource.GENERATED)

        return ConfusingOptions(self.fallback_distractors(card.back), OptionSource.FALLBACK)

    def fallback_distractors(self, correct_answer: str) -> List[str]:
        """Up to three wrong answers drawn from the other cards of the deck."""
        options = generate_multiple_choice_options(
            correct_answer, self.deck_answers, count=DISTRACTOR_COUNT + 1, rng=self.rng,
        )
        correct = correct_answer.lower()
        return [o for o in options if o.lower() != correct][:DISTRACTOR_COUNT]

    async def _generate_shared(self, card: Card) -> Optional[List[str]]:
        task = self._inflight.get(card.id)
        if task is None:
            task = asyncio.ensure_future(self._generate(card.id, card.front, card.back))
            self._inflight[card.id] = task

            def _forget(done, card_id=card.id):
                if self._inflight.get(card_id) is done:
                    del self._inflight[card_id]

            task.add_done_callback(_forget)
        else:
            logger.debug("Joining in-flight distractor request for card %s", card.id)
        # One caller being cancelled must not cancel the request for the others.
        return await asyncio.shield(task)

    async def _generate(self, card_id: str, front: str, back: str) -> Optional[List[str]]:
        try:
            async with self._get_semaphore():
                raw = await self.generator.generate_distractors(front, back, DISTRACTOR_COUNT)
        except DistractorGenerationError as e:
            logger.warning("Distractor generation failed for card %s: %s", card_id, e.kind)
            return None
        except Exception:
            logger.exception("Unexpected distractor generator error for card %s", card_id)
            return None

        ok, reason = validate_distractors(raw, back, DISTRACTOR_COUNT)
        if not ok:
            logger.warning("Rejected generated distractors for card %s: %s", card_id, reason)
            return None
        distractors = [option.strip() for option in raw]

        try:
            self.repository.update_card(self.deck_id, card_id, {'ai_generated_options': distractors})
        except Exception as e:
            logger.warning("Could not cache distractors for card %s: %s", card_id, e)
        else:
            logger.debug("Cached %d generated distractors for card %s", len(distractors), card_id)
        return distractors
