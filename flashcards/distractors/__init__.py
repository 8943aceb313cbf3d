"""Confusing wrong answers for multiple choice: generators, validation and caching."""

from flashcards.distractors.provider import (
    DistractorGenerationError,
    DistractorGenerator,
    FakeGenerator,
    OllamaGenerator,
    OpenAIGenerator,
    build_generator,
)
from flashcards.distractors.service import ConfusingOptions, DistractorProvider, build_options

__all__ = [
    "ConfusingOptions",
    "DistractorGenerationError",
    "DistractorGenerator",
    "DistractorProvider",
    "FakeGenerator",
    "OllamaGenerator",
    "OpenAIGenerator",
    "build_generator",
    "build_options",
]
