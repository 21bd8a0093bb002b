"""Text helpers shared by the classifiers, memory and loop detection.

All similarity measures work on normalised word lists so that casing,
typographic quotes and punctuation never change a score.
"""
import re
from typing import FrozenSet, Iterable, List, Set, Tuple

STOP_WORDS: FrozenSet[str] = frozenset({
    "about", "after", "again", "also", "been", "before", "being", "could",
    "does", "doing", "each", "even", "from", "have", "having", "here",
    "into", "just", "know", "like", "more", "most", "much", "only", "other",
    "really", "same", "should", "some", "such", "than", "that", "their",
    "them", "then", "there", "these", "they", "thing", "things", "this",
    "those", "very", "want", "what", "when", "where", "which", "while",
    "were", "will", "with", "would", "your", "yours", "you're", "i'm", "it's",
    "that's", "don't", "feel", "feeling", "think", "going", "because",
})

_QUOTE_TRANSLATION = str.maketrans({
    "‘": "'", "’": "'", "“": '"', "”": '"',
})
_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w\s']")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")


def normalize_text(text: str) -> str:
    """Lowercase, fold typographic quotes and collapse whitespace."""
    folded = text.translate(_QUOTE_TRANSLATION).lower()
    return _WHITESPACE_RE.sub(" ", folded).strip()


def strip_punctuation(text: str) -> str:
    """Normalise and drop punctuation, apostrophes included."""
    cleaned = _NON_WORD_RE.sub(" ", normalize_text(text)).replace("'", "")
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def words(text: str) -> List[str]:
    return strip_punctuation(text).split()


def ngrams(tokens: List[str], n: int = 3) -> Set[Tuple[str, ...]]:
    return {tuple(tokens[i:i + n]) for i in range(len(tokens) - n + 1)}


def overlap_ratio(first: str, second: str, n: int = 3) -> float:
    """Share of n-grams the two texts have in common.

    |A ∩ B| / min(|A|, |B|). Texts with fewer than ``n`` words are compared
    as word sets instead.

    Returns:
        Ratio in [0, 1], 0.0 if either text is empty
    """
    first_words, second_words = words(first), words(second)
    if not first_words or not second_words:
        return 0.0
    if len(first_words) < n or len(second_words) < n:
        first_set: Set = set(first_words)
        second_set: Set = set(second_words)
    else:
        first_set = ngrams(first_words, n)
        second_set = ngrams(second_words, n)
    return len(first_set & second_set) / min(len(first_set), len(second_set))


def extract_keywords(text: str) -> List[str]:
    """Content words longer than three characters, stop words removed, in order."""
    seen: List[str] = []
    for word in normalize_text(text).split():
        word = word.strip(".,!?;:\"()[]")
        if len(word) > 3 and word not in STOP_WORDS and word not in seen:
            seen.append(word)
    return seen


def keyword_match_ratio(keywords: Iterable[str], content: str) -> float:
    """Fraction of ``keywords`` that occur as words in ``content``."""
    keywords = list(keywords)
    if not keywords:
        return 0.0
    content_words = set(words(content))
    matched = sum(1 for keyword in keywords if keyword.replace("'", "") in content_words)
    return matched / len(keywords)


def split_sentences(text: str) -> List[str]:
    return [part.strip() for part in _SENTENCE_SPLIT_RE.split(text.strip()) if part.strip()]
