"""Tests for client name similarity scoring."""

import pytest

from invoice_transform.core.similarity import (
    CONFIDENT_MATCH_THRESHOLD,
    MAX_NAME_TOKENS,
    POSSIBLE_MATCH_THRESHOLD,
    MatchStrength,
    NameMatcher,
    classify_similarity,
    names_equal,
    normalize_name,
    phonetic_key,
    similarity,
    tokenize_name,
)

NAMES = [
    "Johnathan Reyes",
    "jonathan reyes",
    "jon reys",
    "Maria Lopez",
    "xyz corp",
    "Smith, John A.",
    "José Núñez",
    "",
    "   ",
    "O'Brien & Sons",
]


class TestNormalization:
    def test_normalize_collapses_case_and_whitespace(self):
        assert normalize_name("  Maria   LOPEZ ") == "maria lopez"

    def test_normalize_none(self):
        assert normalize_name(None) == ""

    def test_tokenize_drops_punctuation(self):
        assert tokenize_name("Smith, John A.") == ["smith", "john", "a"]

    def test_tokenize_strips_accents(self):
        assert tokenize_name("José  Núñez") == ["jose", "nunez"]

    def test_tokenize_bounds_token_count(self):
        long_name = " ".join(f"name{i}" for i in range(20))
        assert len(tokenize_name(long_name)) == MAX_NAME_TOKENS

    def test_names_equal_ignores_case_and_spacing(self):
        assert names_equal("  maria LOPEZ", "Maria Lopez")
        assert not names_equal("", "")
        assert not names_equal("Maria", "Mario")


class TestPhoneticKey:
    def test_sound_alike_spellings_share_a_key(self):
        assert phonetic_key("smith") == phonetic_key("smyth") == "s53"
        assert phonetic_key("jonathan") == phonetic_key("johnathan") == "j535"

    def test_non_letters_pass_through(self):
        assert phonetic_key("1234") == "1234"
        assert phonetic_key("") == ""


class TestSimilarityInvariants:
    @pytest.mark.parametrize("name", NAMES)
    def test_reflexive(self, name):
        assert similarity(name, name) == 1.0

    @pytest.mark.parametrize("a", NAMES)
    @pytest.mark.parametrize("b", NAMES)
    def test_symmetric_and_bounded(self, a, b):
        score = similarity(a, b)
        assert score == similarity(b, a)
        assert 0.0 <= score <= 1.0

    def test_case_and_whitespace_insensitive(self):
        assert similarity("MARIA  lopez ", "Maria Lopez") == 1.0

    def test_empty_against_name_is_zero(self):
        assert similarity("", "Maria Lopez") == 0.0
        assert similarity(None, "Maria Lopez") == 0.0


class TestSimilarityScores:
    def test_misspelled_lowercase_name_is_confident(self):
        assert similarity("jonathan reyes", "Johnathan Reyes") >= CONFIDENT_MATCH_THRESHOLD

    def test_abbreviated_misheard_name_is_possible(self):
        score = similarity("jon reys", "Johnathan Reyes")
        assert POSSIBLE_MATCH_THRESHOLD <= score < CONFIDENT_MATCH_THRESHOLD

    def test_unrelated_name_is_noise(self):
        assert similarity("xyz corp", "Johnathan Reyes") < POSSIBLE_MATCH_THRESHOLD
        assert similarity("xyz corp", "Maria Lopez") < POSSIBLE_MATCH_THRESHOLD

    def test_phonetic_variant_scores_high(self):
        assert similarity("Smith", "Smyth") >= CONFIDENT_MATCH_THRESHOLD

    def test_token_order_does_not_matter(self):
        assert similarity("John Smith", "Smith, John A.") >= CONFIDENT_MATCH_THRESHOLD


class TestClassification:
    @pytest.mark.parametrize(
        "score,expected",
        [
            (1.0, MatchStrength.CONFIDENT),
            (0.7, MatchStrength.CONFIDENT),
            (0.69, MatchStrength.POSSIBLE),
            (0.3, MatchStrength.POSSIBLE),
            (0.29, MatchStrength.NONE),
            (0.0, MatchStrength.NONE),
        ],
    )
    def test_bands(self, score, expected):
        assert classify_similarity(score) == expected


class TestNameMatcher:
    corpus = [
        {"id": "c1", "name": "Johnathan Reyes"},
        {"id": "c2", "name": "Maria Lopez"},
        {"id": "c3", "name": None},
    ]

    def test_find_best_match_confident(self):
        result = NameMatcher().find_best_match("jonathan reyes", self.corpus)
        assert result.matched_item["id"] == "c1"
        assert result.strength == MatchStrength.CONFIDENT
        assert not result.needs_confirmation

    def test_find_best_match_possible_needs_confirmation(self):
        result = NameMatcher().find_best_match("jon reys", self.corpus)
        assert result.matched_item["id"] == "c1"
        assert result.needs_confirmation

    def test_find_best_match_none(self):
        result = NameMatcher().find_best_match("xyz corp", self.corpus)
        assert result.matched_item is None
        assert not result.is_match

    def test_empty_inputs(self):
        assert NameMatcher().find_best_match("", self.corpus).matched_item is None
        assert NameMatcher().find_best_match("maria", []).matched_item is None

    def test_score_corpus_skips_nameless_items_and_sorts(self):
        scored = NameMatcher().score_corpus("maria lopez", self.corpus)
        assert [sc.item["id"] for sc in scored] == ["c2", "c1"]
        assert scored[0].exact

    def test_find_similar_respects_min_score_and_limit(self):
        matcher = NameMatcher(min_score=0.5)
        results = matcher.find_similar_in_corpus("maria lopez", self.corpus, max_results=5)
        assert [sc.item["id"] for sc in results] == ["c2"]

    def test_objects_are_read_by_attribute(self):
        class Record:
            def __init__(self, name):
                self.name = name

        result = NameMatcher().find_best_match("maria lopez", [Record("Maria Lopez")])
        assert result.matched_item.name == "Maria Lopez"
