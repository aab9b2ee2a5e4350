"""Word-level similarity between a generated draft and the user's final text."""

import re

from src.core.config import settings
from src.models.email_draft import EditOutcome

_NON_WORD = re.compile(r"\W+")

JACCARD_WEIGHT = 0.7
LENGTH_WEIGHT = 0.3


def _tokenize(text: str) -> list[str]:
    return _NON_WORD.sub(" ", text.lower()).strip().split()


def calculate_edit_similarity(original: str | None, edited: str | None) -> float:
    """Score how closely ``edited`` follows ``original``.

    Combines Jaccard similarity of the word sets (70%) with a word-count
    ratio (30%). Returns 0.0 when either side is empty, including text
    that is empty once punctuation is stripped, and 1.0 for identical input.

    Args:
        original: Text as generated.
        edited: Text as the user finally sent it.

    Returns:
        Similarity in [0, 1].
    """
    if not original or not edited:
        return 0.0
    if original == edited:
        return 1.0

    original_words = _tokenize(original)
    edited_words = _tokenize(edited)
    if not original_words or not edited_words:
        return 0.0

    original_set = set(original_words)
    edited_set = set(edited_words)
    jaccard = len(original_set & edited_set) / len(original_set | edited_set)

    longest = max(len(original_words), len(edited_words))
    length_similarity = 1 - abs(len(original_words) - len(edited_words)) / longest

    return JACCARD_WEIGHT * jaccard + LENGTH_WEIGHT * length_similarity


def is_successful_edit(similarity: float) -> bool:
    """An edit counts as a pattern success only above the success threshold."""
    return similarity > settings.EDIT_SUCCESS_THRESHOLD


def classify_edit(similarity: float) -> EditOutcome:
    """Place a similarity score in its success / partial / failure band."""
    if is_successful_edit(similarity):
        return EditOutcome.SUCCESS
    if similarity > settings.EDIT_PARTIAL_THRESHOLD:
        return EditOutcome.PARTIAL
    return EditOutcome.FAILURE
