"""
Flashcards CLI.

Usage:
    python -m flashcards.cli --db cards.jsonl due [--deck DECK]
    python -m flashcards.cli --db cards.jsonl stats [--deck DECK]
    python -m flashcards.cli --db cards.jsonl order --deck DECK --mode difficult
    python -m flashcards.cli --db cards.jsonl study --deck DECK --mode due --interaction learn
    python -m flashcards.cli validate "the mitochondria" "Mitochondria" --type flexible
"""

import argparse
import asyncio
import logging
import random
from typing import Callable, List, Optional

from flashcards.card_types import (
    AnswerValidation,
    FlashcardRating,
    QuestionType,
    SessionState,
    StudyInteractionType,
    StudyMode,
)
from flashcards.config import Settings
from flashcards.distractors import DistractorProvider, build_generator
from flashcards.scheduler import get_due_cards, get_study_order, get_study_stats, prepare_study_cards
from flashcards.session import SessionTiming, StudySession
from flashcards.storage import DeckStore
from flashcards.validator import get_validation_description, validate_answer

QUIT = 'q'

_RATING_KEYS = {
    '1': FlashcardRating.DIDNT_KNOW,
    '2': FlashcardRating.HARD,
    '3': FlashcardRating.EASY,
}

# Interaction types that make sense on a line-based terminal
CLI_INTERACTIONS = [t.value for t in StudyInteractionType if t != StudyInteractionType.MATCH]


def _open_store(args) -> DeckStore:
    settings = Settings()
    db = args.db or settings.study_db_path
    return DeckStore(db)


def _deck_cards(store: DeckStore, deck: Optional[str]):
    if deck:
        return store.get_cards_for_deck(deck)
    cards = []
    for deck_id in store.deck_ids():
        cards.extend(store.get_cards_for_deck(deck_id))
    return cards


def cmd_due(args):
    """Show due cards."""
    store = _open_store(args)
    due = get_study_order(get_due_cards(_deck_cards(store, args.deck)), StudyMode.DUE)
    if not due:
        print("No cards due today.")
        return
    print(f"\n{len(due)} card(s) due for review:\n")
    for i, card in enumerate(due, 1):
        print(f"  {i}. [{card.deck_id}] {card.front[:80]}")
        print(f"     due={card.next_review_date.isoformat()}  ease={card.ease_factor:.2f}  "
              f"reps={card.repetitions}  interval={card.interval}d")


def cmd_stats(args):
    """Show deck statistics."""
    store = _open_store(args)
    cards = _deck_cards(store, args.deck)
    stats = get_study_stats(cards)

    print(f"\nDeck: {args.deck or 'all decks'}")
    print(f"  Total cards: {stats['total']}")
    print(f"  Due now:     {stats['due']}")
    print(f"  New:         {stats['new']}")
    print(f"  Learning:    {stats['learning']}")
    print(f"  Mastered:    {stats['mastered']}")

    if args.deck:
        sessions = store.get_study_sessions(args.deck)
        if sessions:
            studied = sum(s.cards_studied for s in sessions)
            correct = sum(s.correct_answers for s in sessions)
            accuracy = correct / studied if studied else 0.0
            print(f"\n  Sessions: {len(sessions)}  cards studied: {studied}  "
                  f"accuracy: {accuracy * 100:.1f}%")


def cmd_order(args):
    """Print the order a session would use."""
    store = _open_store(args)
    cards = store.get_cards_for_deck(args.deck)
    ordered = get_study_order(cards, args.mode, rng=random.Random(args.seed) if args.seed is not None else None)
    if not ordered:
        print(f"No cards in deck {args.deck}.")
        return
    for i, card in enumerate(ordered, 1):
        print(f"  {i}. {card.front[:80]}  (ease={card.ease_factor:.2f} reps={card.repetitions})")


def cmd_validate(args):
    """Score one answer and explain the rule used."""
    result = validate_answer(args.user_answer, args.correct_answer, args.type)
    verdict = "correct" if result.is_correct else "incorrect"
    print(f"{verdict}  similarity={result.similarity:.2f}")
    print(f"  ({get_validation_description(args.type)})")


async def run_study_session(
    session: StudySession,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
):
    """
    Drive a session on a line-based terminal.

    Entering 'q' at any prompt stops early; no summary is written then.
    Returns the session summary, or None if the session was abandoned or empty.
    """
    await session.start()
    if session.state == SessionState.COMPLETE:
        output_fn("No cards to study.")
        return None

    while session.state != SessionState.COMPLETE:
        question = session.current_question()
        if question is None:
            await session.wait_for_advance()
            continue

        progress = session.progress()
        output_fn(f"\n[{progress.position}/{progress.total}] {question.front}")

        if question.question_type == QuestionType.FLASHCARD:
            if input_fn("  (press Enter to reveal) ").strip().lower() == QUIT:
                session.close()
                return None
            shown = session.reveal()
            output_fn(f"  Answer: {shown.back}")
            rating = _ask_rating(input_fn, output_fn)
            if rating is None:
                session.close()
                return None
            feedback = await session.rate(rating)
        elif question.question_type == QuestionType.WRITTEN:
            text = ''
            while not text.strip():
                text = input_fn("  Your answer: ")
            if text.strip().lower() == QUIT:
                session.close()
                return None
            feedback = await session.submit_written(text)
        else:
            option = _ask_option(question.options or [], input_fn, output_fn)
            if option is None:
                session.close()
                return None
            feedback = await session.choose_option(option)

        if feedback.is_correct:
            output_fn("  Correct!")
        else:
            output_fn(f"  Incorrect. The answer is: {feedback.correct_answer}")
        await session.wait_for_advance()

    summary = session.summary
    output_fn(f"\nSession complete: {summary.correct_answers}/{summary.cards_studied} correct "
              f"({summary.accuracy * 100:.0f}%)")
    return summary


def _ask_rating(input_fn, output_fn) -> Optional[FlashcardRating]:
    while True:
        raw = input_fn("  How well did you know it? 1) Didn't know  2) Hard  3) Easy: ").strip().lower()
        if raw == QUIT:
            return None
        if raw in _RATING_KEYS:
            return _RATING_KEYS[raw]
        output_fn("  Please enter 1, 2 or 3.")


def _ask_option(options: List[str], input_fn, output_fn) -> Optional[str]:
    for i, option in enumerate(options, 1):
        output_fn(f"    {i}) {option}")
    while True:
        raw = input_fn("  Choice: ").strip().lower()
        if raw == QUIT:
            return None
        if raw.isdigit() and 1 <= int(raw) <= len(options):
            return options[int(raw) - 1]
        output_fn(f"  Please enter a number from 1 to {len(options)}.")


def cmd_study(args, input_fn=input, output_fn=print):
    """Run an interactive study session."""
    settings = Settings()
    store = _open_store(args)
    cards = prepare_study_cards(store.get_cards_for_deck(args.deck), args.mode)
    rng = random.Random(args.seed) if args.seed is not None else None

    distractors = None
    if args.interaction == StudyInteractionType.AI_QUIZ.value:
        distractors = DistractorProvider(
            store,
            build_generator(settings),
            deck_id=args.deck,
            deck_answers=[c.back for c in cards],
            rng=rng,
            concurrency=settings.llm_concurrency,
        )

    session = StudySession(
        args.deck,
        cards,
        args.interaction,
        store,
        distractors=distractors,
        timing=SessionTiming.from_settings(settings),
        rng=rng,
    )
    return asyncio.run(run_study_session(session, input_fn=input_fn, output_fn=output_fn))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Flashcards -- spaced repetition study sessions",
        prog="python -m flashcards.cli",
    )
    parser.add_argument(
        '--db', default=None,
        help="Path to card storage JSONL file (default: <data_root>/cards.jsonl)",
    )
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    due_parser = subparsers.add_parser('due', help='Show cards due for review')
    due_parser.add_argument('--deck', default=None, help='Only this deck')

    stats_parser = subparsers.add_parser('stats', help='Show deck statistics')
    stats_parser.add_argument('--deck', default=None, help='Only this deck')

    order_parser = subparsers.add_parser('order', help='Show study order for a deck')
    order_parser.add_argument('--deck', required=True, help='Deck id')
    order_parser.add_argument('--mode', default=StudyMode.DUE.value,
                              choices=[m.value for m in StudyMode])
    order_parser.add_argument('--seed', type=int, default=None, help='Seed for random order')

    study_parser = subparsers.add_parser('study', help='Run an interactive study session')
    study_parser.add_argument('--deck', required=True, help='Deck id')
    study_parser.add_argument('--mode', default=StudyMode.DUE.value,
                              choices=[m.value for m in StudyMode])
    study_parser.add_argument('--interaction', default=StudyInteractionType.FLASHCARDS.value,
                              choices=CLI_INTERACTIONS)
    study_parser.add_argument('--seed', type=int, default=None, help='Seed for shuffling')

    validate_parser = subparsers.add_parser('validate', help='Check an answer against a reference')
    validate_parser.add_argument('user_answer')
    validate_parser.add_argument('correct_answer')
    validate_parser.add_argument('--type', default=AnswerValidation.FLEXIBLE.value,
                                 choices=[v.value for v in AnswerValidation])
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == 'due':
        cmd_due(args)
    elif args.command == 'stats':
        cmd_stats(args)
    elif args.command == 'order':
        cmd_order(args)
    elif args.command == 'study':
        cmd_study(args)
    elif args.command == 'validate':
        cmd_validate(args)
    else:
        parser.print_help()


if __name__ == '__main__':
    main()
