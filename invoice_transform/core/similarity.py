"""
Client Name Similarity Scoring.

Compares a spoken (transcribed) client name against stored client names.
Voice transcripts mostly fail by mishearing rather than mistyping, so a
phonetic comparison is blended with a lexical one and allowed to outweigh it.

Scoring:
1. Normalize (lowercase, trim, collapse whitespace); identical -> 1.0
2. Tokenize (accents stripped, punctuation dropped)
3. Score every token pair: PHONETIC_WEIGHT * phonetic + LEXICAL_WEIGHT * lexical
   (both are rapidfuzz normalized Levenshtein similarities, over phonetic keys
   and raw tokens respectively); pairs below TOKEN_MATCH_FLOOR count as 0
4. Greedily align tokens one-to-one, best pairs first
5. Aggregate as a Dice coefficient: 2 * sum(aligned) / (len(a) + len(b))

The score is symmetric, reflexive and bounded to [0, 1]. Callers rely on the
fixed bands below, not on the exact blend.

Usage:
    from invoice_transform.core.similarity import NameMatcher, similarity

    similarity("jonathan reyes", "Johnathan Reyes")   # ~0.98

    matcher = NameMatcher()
    result = matcher.find_best_match("jon reys", clients, text_field="name")
    if result.strength == MatchStrength.POSSIBLE:
        ask_user_to_confirm(result.matched_item)
"""

import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from rapidfuzz.distance import Levenshtein

from invoice_transform.core.logging import get_logger

logger = get_logger(__name__)


# Fixed bands used by callers
CONFIDENT_MATCH_THRESHOLD = 0.7
POSSIBLE_MATCH_THRESHOLD = 0.3

# Blend tunables
PHONETIC_WEIGHT = 0.6
LEXICAL_WEIGHT = 0.4
TOKEN_MATCH_FLOOR = 0.5

# Bounds the pairwise token comparison
MAX_NAME_TOKENS = 8


class MatchStrength(str, Enum):
    """How a similarity score is treated by callers."""
    EXACT = "exact"
    CONFIDENT = "confident"
    POSSIBLE = "possible"
    NONE = "none"


# Common speech-to-text spelling confusions, applied in order
_PHONETIC_REWRITES: list[tuple[re.Pattern, str]] = [
    (re.compile(pattern), replacement)
    for pattern, replacement in [
        (r"ph", "f"),
        (r"ck", "k"),
        (r"gh", ""),
        (r"tion", "shun"),
        (r"sion", "shun"),
        (r"ee", "i"),
        (r"ea", "e"),
        (r"oo", "u"),
        (r"ey", "ee"),
        (r"ie", "ee"),
        (r"y$", "ee"),
        (r"c([eiy])", r"s\1"),
        (r"qu", "kw"),
        (r"x", "ks"),
        (r"ough", "o"),
        (r"augh", "af"),
        (r"sch", "sk"),
        (r"tch", "ch"),
        (r"^wr", "r"),
        (r"^kn", "n"),
        (r"mb$", "m"),
        (r"mn$", "m"),
    ]
]

# Leading letters that are routinely confused in transcripts
_FIRST_LETTER = {
    "c": "k", "q": "k",
    "z": "s",
    "g": "j",
    "v": "f", "p": "f",
}

# Soundex consonant groups
_CONSONANT_CODES = {
    **dict.fromkeys("bfpv", "1"),
    **dict.fromkeys("cgjkqsxz", "2"),
    **dict.fromkeys("dt", "3"),
    "l": "4",
    **dict.fromkeys("mn", "5"),
    "r": "6",
}

# Vowels and glides separate consonant codes
_SEPARATORS = frozenset("aeiouyhw")

_TOKEN_RE = re.compile(r"[^\W_]+")


def normalize_name(name: str | None) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    if not name:
        return ""
    return " ".join(name.lower().split())


def tokenize_name(name: str | None) -> list[str]:
    """
    Split a name into comparable tokens.

    "Smith, John A." -> ["smith", "john", "a"]
    "José  Núñez"    -> ["jose", "nunez"]
    """
    if not name:
        return []

    decomposed = unicodedata.normalize("NFKD", name.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _TOKEN_RE.findall(stripped)[:MAX_NAME_TOKENS]


def phonetic_key(token: str) -> str:
    """
    Encode a token by how it sounds.

    Spelling rewrites first, then a Soundex-style consonant code without
    truncation: "smith" and "smyth" -> "s53", "jonathan" and "johnathan" -> "j535".
    Tokens without ASCII letters are returned unchanged.
    """
    if not token or not any("a" <= ch <= "z" for ch in token):
        return token

    rewritten = token
    for pattern, replacement in _PHONETIC_REWRITES:
        rewritten = pattern.sub(replacement, rewritten)

    if not rewritten:
        return ""

    first = rewritten[0]
    key = [_FIRST_LETTER.get(first, first)]
    previous = _CONSONANT_CODES.get(first, "")

    for ch in rewritten[1:]:
        if ch in _SEPARATORS:
            previous = ""
            continue
        code = _CONSONANT_CODES.get(ch, "")
        if code and code != previous:
            key.append(code)
        previous = code or previous

    return "".join(key)


def token_similarity(token_a: str, token_b: str) -> float:
    """Blend phonetic and lexical similarity of two single tokens."""
    if token_a == token_b:
        return 1.0

    lexical = Levenshtein.normalized_similarity(token_a, token_b)

    key_a = phonetic_key(token_a)
    key_b = phonetic_key(token_b)
    if key_a and key_b:
        phonetic = Levenshtein.normalized_similarity(key_a, key_b)
    else:
        phonetic = lexical

    return PHONETIC_WEIGHT * phonetic + LEXICAL_WEIGHT * lexical


def _aligned_score(tokens_a: list[str], tokens_b: list[str]) -> float:
    pairs: list[tuple[float, int, int]] = []
    for i, token_a in enumerate(tokens_a):
        for j, token_b in enumerate(tokens_b):
            score = token_similarity(token_a, token_b)
            if score >= TOKEN_MATCH_FLOOR:
                pairs.append((score, i, j))

    # Highest scores first; index order breaks ties deterministically
    pairs.sort(key=lambda p: (-p[0], p[1], p[2]))

    used_a: set[int] = set()
    used_b: set[int] = set()
    total = 0.0
    for score, i, j in pairs:
        if i in used_a or j in used_b:
            continue
        used_a.add(i)
        used_b.add(j)
        total += score

    return 2.0 * total / (len(tokens_a) + len(tokens_b))


def similarity(a: str | None, b: str | None) -> float:
    """
    Similarity of two names in [0, 1].

    Symmetric, reflexive, and insensitive to case and whitespace.
    """
    norm_a = normalize_name(a)
    norm_b = normalize_name(b)

    if norm_a == norm_b:
        return 1.0

    # Fixed argument order makes the result independent of call order
    if norm_a > norm_b:
        norm_a, norm_b = norm_b, norm_a

    tokens_a = tokenize_name(norm_a)
    tokens_b = tokenize_name(norm_b)
    if not tokens_a or not tokens_b:
        return 0.0

    score = _aligned_score(tokens_a, tokens_b)
    return min(1.0, max(0.0, score))


def classify_similarity(score: float) -> MatchStrength:
    """Map a score onto the caller-facing bands."""
    if score >= CONFIDENT_MATCH_THRESHOLD:
        return MatchStrength.CONFIDENT
    if score >= POSSIBLE_MATCH_THRESHOLD:
        return MatchStrength.POSSIBLE
    return MatchStrength.NONE


def names_equal(a: str | None, b: str | None) -> bool:
    """Case and whitespace insensitive name equality."""
    return bool(normalize_name(a)) and normalize_name(a) == normalize_name(b)


@dataclass
class ScoredCandidate:
    """A candidate with its similarity score."""
    item: Any
    score: float
    exact: bool = False


@dataclass
class MatchResult:
    """Result of matching one name against a corpus."""
    score: float
    strength: MatchStrength
    matched_item: Any | None = None
    all_candidates: list[ScoredCandidate] = field(default_factory=list)

    @property
    def needs_confirmation(self) -> bool:
        return self.strength == MatchStrength.POSSIBLE

    @property
    def is_match(self) -> bool:
        return self.strength != MatchStrength.NONE


class NameMatcher:
    """
    Scores a spoken name against a corpus of records.

    Records may be dicts or objects; ``text_field`` names the key or attribute
    holding the name.
    """

    def __init__(self, min_score: float = POSSIBLE_MATCH_THRESHOLD):
        self.min_score = min_score

    @staticmethod
    def _text_of(item: Any, text_field: str) -> str:
        if isinstance(item, dict):
            return item.get(text_field) or ""
        return getattr(item, text_field, None) or ""

    def score_corpus(
        self,
        candidate: str,
        corpus: list[Any],
        text_field: str = "name",
    ) -> list[ScoredCandidate]:
        """Score every item, highest first; ties keep corpus order."""
        scored: list[ScoredCandidate] = []

        for item in corpus:
            item_text = self._text_of(item, text_field)
            if not item_text:
                continue

            scored.append(ScoredCandidate(
                item=item,
                score=similarity(candidate, item_text),
                exact=names_equal(candidate, item_text),
            ))

        scored.sort(key=lambda sc: sc.score, reverse=True)
        return scored

    def find_best_match(
        self,
        candidate: str,
        corpus: list[Any],
        text_field: str = "name",
    ) -> MatchResult:
        """
        Find the single best item for a candidate name.

        Returns:
            MatchResult; ``matched_item`` is None when the best score is noise
        """
        if not normalize_name(candidate) or not corpus:
            return MatchResult(score=0.0, strength=MatchStrength.NONE)

        scored = self.score_corpus(candidate, corpus, text_field)
        if not scored:
            return MatchResult(score=0.0, strength=MatchStrength.NONE)

        best = scored[0]
        strength = classify_similarity(best.score)

        logger.debug(
            f"Best match for {candidate!r}: {self._text_of(best.item, text_field)!r} "
            f"score={best.score:.3f} strength={strength.value}"
        )

        return MatchResult(
            score=best.score,
            strength=strength,
            matched_item=best.item if strength != MatchStrength.NONE else None,
            all_candidates=scored[:5],
        )

    def find_similar_in_corpus(
        self,
        candidate: str,
        corpus: list[Any],
        text_field: str = "name",
        max_results: int | None = None,
    ) -> list[ScoredCandidate]:
        """
        All items scoring at least ``min_score``, highest first.

        Args:
            candidate: Spoken name
            corpus: Records to search
            text_field: Field holding the name
            max_results: Truncate to this many results

        Returns:
            List of ScoredCandidate sorted by score descending
        """
        if not normalize_name(candidate) or not corpus:
            return []

        results = [
            sc for sc in self.score_corpus(candidate, corpus, text_field)
            if sc.score >= self.min_score
        ]

        if max_results is not None:
            results = results[:max_results]
        return results
