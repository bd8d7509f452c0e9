"""
Tests for tolerant parsing of model output.
"""

import json
import pytest

from quizsmith.exceptions import MalformedOutput
from quizsmith.services.response_parser import QuestionDraft, ResponseParser

from tests.mocks import (
    FENCED_ARRAY_RESPONSE,
    INVALID_BATCH_RESPONSE,
    MOCK_EXPLANATION,
    MOCK_QUESTIONS,
    WRAPPED_OBJECT_RESPONSE,
)


@pytest.fixture
def parser() -> ResponseParser:
    return ResponseParser()


def _question(**overrides):
    item = {
        "question": "What is 2 + 2?",
        "choices": ["3", "4", "5", "22"],
        "correct": "4",
    }
    item.update(overrides)
    return item


class TestWireShapes:
    """Test both accepted shapes normalize to the same drafts"""

    @pytest.mark.unit
    def test_bare_array_and_wrapped_object_match(self, parser: ResponseParser):
        from_array = parser.parse(json.dumps(MOCK_QUESTIONS))
        from_object = parser.parse(WRAPPED_OBJECT_RESPONSE)

        assert len(from_array) == 5
        assert [d.model_dump() for d in from_array] == [d.model_dump() for d in from_object]

    @pytest.mark.unit
    def test_fenced_array_with_prose(self, parser: ResponseParser):
        """Code fences and surrounding chatter are stripped"""
        drafts = parser.parse(FENCED_ARRAY_RESPONSE)
        assert len(drafts) == 5
        assert drafts[0].question == MOCK_QUESTIONS[0]["question"]

    @pytest.mark.unit
    def test_correct_answer_alias(self, parser: ResponseParser):
        item = _question()
        item["correct_answer"] = item.pop("correct")
        drafts = parser.parse(json.dumps([item]))
        assert drafts[0].correct == "4"

    @pytest.mark.unit
    def test_unrecognized_object_shape(self, parser: ResponseParser):
        with pytest.raises(MalformedOutput):
            parser.parse(json.dumps({"items": [_question()]}))

    @pytest.mark.unit
    def test_empty_question_list(self, parser: ResponseParser):
        with pytest.raises(MalformedOutput):
            parser.parse('{"questions": []}')

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", ["", "   ", "I cannot help with that.", "{not json}", "] backwards ["])
    def test_unrecoverable_text(self, parser: ResponseParser, raw):
        with pytest.raises(MalformedOutput):
            parser.parse(raw)

    @pytest.mark.unit
    def test_deeply_nested_output(self, parser: ResponseParser):
        """Nesting past the decoder's recursion limit is malformed output"""
        with pytest.raises(MalformedOutput):
            parser.parse("[" * 200000 + "]" * 200000)


class TestDraftValidation:
    """Test per-question validation and all-or-nothing batches"""

    @pytest.mark.unit
    def test_explanation_carried_through(self, parser: ResponseParser):
        drafts = parser.parse(WRAPPED_OBJECT_RESPONSE)
        assert drafts[0].explanation == MOCK_EXPLANATION
        assert drafts[1].explanation is None

    @pytest.mark.unit
    def test_correct_matched_after_trimming(self, parser: ResponseParser):
        drafts = parser.parse(json.dumps([_question(choices=[" 3", "4 ", "5", "22"], correct=" 4")]))
        assert drafts[0].correct_index == 1

    @pytest.mark.unit
    def test_correct_not_in_choices_rejected(self, parser: ResponseParser):
        with pytest.raises(MalformedOutput):
            parser.parse(json.dumps([_question(correct="four")]))

    @pytest.mark.unit
    def test_letter_key_is_not_accepted(self, parser: ResponseParser):
        """Correct answer must be the choice text, not its letter"""
        with pytest.raises(MalformedOutput):
            parser.parse(json.dumps([_question(correct="B")]))

    @pytest.mark.unit
    def test_ambiguous_correct_rejected(self, parser: ResponseParser):
        with pytest.raises(MalformedOutput):
            parser.parse(json.dumps([_question(choices=["4", "4", "5", "6"])]))

    @pytest.mark.unit
    @pytest.mark.parametrize("choices", [["1", "2", "3"], ["1", "2", "3", "4", "5"], ["1", 2, "3", "4"], "1,2,3,4"])
    def test_choice_count_and_type(self, parser: ResponseParser, choices):
        with pytest.raises(MalformedOutput):
            parser.parse(json.dumps([_question(choices=choices, correct="1")]))

    @pytest.mark.unit
    def test_blank_question_rejected(self, parser: ResponseParser):
        with pytest.raises(MalformedOutput):
            parser.parse(json.dumps([_question(question="   ")]))

    @pytest.mark.unit
    def test_missing_correct_rejected(self, parser: ResponseParser):
        item = _question()
        del item["correct"]
        with pytest.raises(MalformedOutput):
            parser.parse(json.dumps([item]))

    @pytest.mark.unit
    def test_one_bad_element_rejects_whole_batch(self, parser: ResponseParser):
        with pytest.raises(MalformedOutput) as exc_info:
            parser.parse(INVALID_BATCH_RESPONSE)
        assert "question 4" in exc_info.value.detail

    @pytest.mark.unit
    def test_non_object_element_rejected(self, parser: ResponseParser):
        with pytest.raises(MalformedOutput):
            parser.parse(json.dumps([_question(), "just a string"]))

    @pytest.mark.unit
    def test_raw_output_not_in_client_message(self, parser: ResponseParser):
        raw = "SECRET-PROMPT-ECHO {broken"
        with pytest.raises(MalformedOutput) as exc_info:
            parser.parse(raw)
        assert "SECRET-PROMPT-ECHO" not in exc_info.value.message


class TestQuestionDraft:
    @pytest.mark.unit
    def test_question_text_trimmed(self):
        draft = QuestionDraft.model_validate(_question(question="  What is 2 + 2?  "))
        assert draft.question == "What is 2 + 2?"

    @pytest.mark.unit
    def test_sanitize_keeps_outermost_structure(self):
        assert ResponseParser.sanitize('noise {"a": [1]} trailing') == '{"a": [1]}'
        assert ResponseParser.sanitize("no json here") == ""
