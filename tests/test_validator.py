"""
Validator rules: word limit, placeholder nouns, entity worthiness and the
cleanup quality report.
"""
import pytest

from memoir_prompts.services.validator import (
    FORBIDDEN_WORDS,
    is_valid,
    is_worthy_entity,
    quality_report,
    word_count,
)


class TestIsValid:
    def test_plain_question_is_valid(self):
        assert is_valid("Who showed you courage?")

    @pytest.mark.parametrize("word", sorted(FORBIDDEN_WORDS))
    def test_each_forbidden_word_rejects(self, word):
        assert not is_valid(f"Tell me about that {word} from your childhood.")

    def test_forbidden_match_ignores_case_and_punctuation(self):
        assert not is_valid("What did the GIRL say?")
        assert not is_valid("Who lived in that house, back then?")

    def test_forbidden_word_inside_longer_word_is_allowed(self):
        assert is_valid("Was your first dog housebroken quickly?")
        assert is_valid("Who was your chairperson at the union?")

    def test_thirty_words_is_the_limit(self):
        thirty = " ".join(["word"] * 30)
        assert word_count(thirty) == 30
        assert is_valid(thirty)
        assert not is_valid(thirty + " more")

    def test_explicit_word_limit(self):
        assert not is_valid("one two three four", max_words=3)

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_empty_text_is_invalid(self, text):
        assert not is_valid(text)

    @pytest.mark.parametrize("value", [None, 42, ["who", "cares"]])
    def test_non_string_is_invalid(self, value):
        assert is_valid(value) is False


class TestWorthyEntity:
    @pytest.mark.parametrize("text", ["Aunt May", "Chewy", "Dad's truck", "my grandmother", "blue bike"])
    def test_specific_entities(self, text):
        assert is_worthy_entity(text)

    @pytest.mark.parametrize("text", ["", None, "kid", "house", "the girl", "place", "to", "my dad and", "42nd"])
    def test_generic_or_fragmentary_entities(self, text):
        assert not is_worthy_entity(text)


class TestQualityReport:
    def test_clean_prompt(self):
        report = quality_report("Who taught you to fish at Lake Tahoe?")
        assert report.is_valid
        assert report.issues == []
        assert report.score == 100

    def test_forbidden_and_yes_no(self):
        report = quality_report("Did the man ever come back?")
        assert not report.is_valid
        assert set(report.issue_types) == {"forbidden", "yes_no"}
        assert report.score == 0

    def test_long_prompt(self):
        report = quality_report(" ".join(["word"] * 31))
        assert not report.is_valid
        assert report.issue_types == ["long"]
        assert report.word_count == 31

    def test_generic_prompt_stays_valid(self):
        report = quality_report("Tell me more about that summer.")
        assert report.is_valid
        assert report.issue_types == ["generic"]

    def test_empty_prompt(self):
        report = quality_report("")
        assert not report.is_valid
        assert report.issue_types == ["empty"]
