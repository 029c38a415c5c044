# Copyright (c) Syntropy Systems
"""Heuristic text quality scoring.

All signals are closed-form functions of the response text and its prompt;
nothing here is a trained model.
"""
from __future__ import annotations

import re

from promptgrid.models.experiment import QualityMetrics, round2

# ECMAScript whitespace; unlike str.isspace it excludes \x1c-\x1f and \x85
WHITESPACE_CHARS = (
    "\t\n\v\f\r \u00a0\u1680"
    "\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a"
    "\u2028\u2029\u202f\u205f\u3000\ufeff"
)

_SENTENCE_BOUNDARY = re.compile(r"[.!?]+")
_WHITESPACE = re.compile(f"[{WHITESPACE_CHARS}]+")

SINGLE_SENTENCE_COHERENCE = 0.75
COHERENCE_SPAN = 25
COMPLETENESS_RATIO = 1.5
READING_EASE_TARGET = 60
READING_EASE_SPAN = 100
SYLLABLES_PER_WORD = 1.3
STRUCTURED_SENTENCES = 3
STRUCTURED_SCORE = 0.8
UNSTRUCTURED_SCORE = 0.5


def split_sentences(text: str) -> list[str]:
    """Split text into sentences on runs of ``.``, ``!`` and ``?``."""
    sentences = (s.strip(WHITESPACE_CHARS) for s in _SENTENCE_BOUNDARY.split(text))
    return [s for s in sentences if s]


def split_words(text: str) -> list[str]:
    """Split text into words on runs of WHITESPACE_CHARS."""
    return [word for word in _WHITESPACE.split(text) if word]


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def reading_ease(word_count: int, sentence_count: int) -> float:
    """Flesch reading-ease estimate with syllables approximated per word.

    Returns 0 when there are no words or no sentences.
    """
    if word_count == 0 or sentence_count == 0:
        return 0.0
    syllables = word_count * SYLLABLES_PER_WORD
    return (
        206.835
        - 1.015 * (word_count / sentence_count)
        - 84.6 * (syllables / word_count)
    )


def _coherence(sentences: list[str], prompt_word_count: int) -> float:
    if len(sentences) < 2:
        return SINGLE_SENTENCE_COHERENCE
    average_length = sum(len(split_words(s)) for s in sentences) / len(sentences)
    expected = prompt_word_count / len(sentences)
    return _clamp(1 - abs(average_length - expected) / COHERENCE_SPAN)


def _redundancy(words: list[str]) -> float:
    if not words:
        return 1.0
    unique = len({word.lower() for word in words})
    return _clamp(1 - (len(words) - unique) / len(words))


def analyze_quality(text: str, prompt: str) -> QualityMetrics:
    """Score a response against its prompt.

    Deterministic: the same (text, prompt) always gives the same metrics.
    """
    sentences = split_sentences(text)
    words = split_words(text)
    prompt_words = split_words(prompt)

    coherence = _coherence(sentences, len(prompt_words))
    completeness = _clamp(len(words) / max(1, len(prompt_words) * COMPLETENESS_RATIO))
    redundancy = _redundancy(words)
    estimate = reading_ease(len(words), len(sentences))
    readability = _clamp(1 - abs(estimate - READING_EASE_TARGET) / READING_EASE_SPAN)
    structure = (
        STRUCTURED_SCORE if len(sentences) >= STRUCTURED_SENTENCES else UNSTRUCTURED_SCORE
    )

    return QualityMetrics(
        coherence=round2(coherence),
        completeness=round2(completeness),
        redundancy=round2(redundancy),
        readability=round2(readability),
        structure=round2(structure),
    )
