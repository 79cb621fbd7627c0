"""
Unit tests for question generation

- Prompt assembly (system instruction, context vs general-knowledge body)
- Strict parsing of the model output: fences, schema, MCQ shape, exact count
"""
import asyncio
import json

import pytest

from conftest import mcq_items, plain_items
from generation.errors import GenerationCountError, GenerationParseError
from generation.question_generator import (
    GENERAL_KNOWLEDGE_PROMPT,
    build_prompt_body,
    build_system_instruction,
    generate_questions,
    parse_generated_questions,
)


@pytest.fixture
def mcq_rule(make_blueprint):
    blueprint = make_blueprint([("Mathematics", [
        {"type": "mcq_single", "difficulty": 3, "count": 5, "tags": ["Algebra"]},
    ])])
    return blueprint.sections[0].rules[0]


@pytest.fixture
def numerical_rule(make_blueprint):
    blueprint = make_blueprint([("Mathematics", [{"type": "numerical", "count": 2}])])
    return blueprint.sections[0].rules[0]


class TestPrompts:

    def test_system_instruction_pins_rule(self, mcq_rule):
        system = build_system_instruction(mcq_rule, 3)

        assert "Generate exactly 3 highly original" in system
        assert "Algebra" in system
        assert "Type: mcq_single" in system
        assert "Difficulty: 3" in system
        assert '"correctOption"' in system
        assert "DO NOT return markdown codeblocks" in system

    def test_non_mcq_instruction_has_no_options(self, numerical_rule):
        system = build_system_instruction(numerical_rule, 2)

        assert '"options"' not in system
        assert "General Knowledge" in system
        assert "Difficulty: medium" in system

    def test_body_uses_context(self):
        assert build_prompt_body("Linear equations have one solution.") == (
            "Context Book Knowledge:\nLinear equations have one solution."
        )

    def test_body_falls_back_to_general_knowledge(self):
        assert build_prompt_body("") == GENERAL_KNOWLEDGE_PROMPT


class TestParsing:

    def test_parses_bare_array(self, mcq_rule):
        items = parse_generated_questions(json.dumps(mcq_items(3)), mcq_rule, 3)

        assert len(items) == 3
        assert items[0].options == ["1", "2", "3", "4"]
        assert items[0].correct_option == 1
        assert items[0].difficulty == 3

    def test_parses_fenced_array(self, mcq_rule):
        raw = "```json\n" + json.dumps(mcq_items(2)) + "\n```"

        assert len(parse_generated_questions(raw, mcq_rule, 2)) == 2

    def test_difficulty_words_are_coerced(self, numerical_rule):
        items = parse_generated_questions(json.dumps(plain_items(2)), numerical_rule, 2)

        assert [i.difficulty for i in items] == [3, 3]
        assert items[0].options == []

    def test_count_mismatch(self, mcq_rule):
        with pytest.raises(GenerationCountError) as exc:
            parse_generated_questions(json.dumps(mcq_items(2)), mcq_rule, 3)

        assert exc.value.expected == 3
        assert exc.value.received == 2
        assert exc.value.stage == "parsing"

    @pytest.mark.parametrize("raw", [
        "Sorry, I cannot help with that.",
        "[{\"text\": \"unterminated\"",
        '{"text": "an object, not an array"}',
    ])
    def test_malformed_output(self, mcq_rule, raw):
        with pytest.raises(GenerationParseError):
            parse_generated_questions(raw, mcq_rule, 1)

    def test_array_wrapped_in_object_rejected(self, mcq_rule):
        raw = json.dumps({"questions": mcq_items(1)})

        with pytest.raises(GenerationParseError, match="not a JSON array"):
            parse_generated_questions(raw, mcq_rule, 1)

    def test_prose_around_array_rejected(self, mcq_rule):
        raw = "Here are the questions:\n" + json.dumps(mcq_items(1))

        with pytest.raises(GenerationParseError):
            parse_generated_questions(raw, mcq_rule, 1)

    def test_mcq_needs_four_options(self, mcq_rule):
        item = mcq_items(1)[0]
        item["options"] = ["1", "2", "3"]

        with pytest.raises(GenerationParseError, match="exactly 4 options"):
            parse_generated_questions(json.dumps([item]), mcq_rule, 1)

    def test_numeric_options_are_accepted_as_text(self, mcq_rule):
        item = mcq_items(1)[0]
        item["options"] = [3, 4, 5.5, 6]

        items = parse_generated_questions(json.dumps([item]), mcq_rule, 1)

        assert items[0].options == ["3", "4", "5.5", "6"]

    def test_mcq_correct_option_in_range(self, mcq_rule):
        item = mcq_items(1)[0]
        item["correctOption"] = 4

        with pytest.raises(GenerationParseError, match="correctOption"):
            parse_generated_questions(json.dumps([item]), mcq_rule, 1)

    def test_blank_text_rejected(self, mcq_rule):
        item = mcq_items(1)[0]
        item["text"] = "   "

        with pytest.raises(GenerationParseError):
            parse_generated_questions(json.dumps([item]), mcq_rule, 1)

    def test_options_rejected_for_non_mcq(self, numerical_rule):
        item = plain_items(1)[0]
        item["options"] = ["1", "2", "3", "4"]

        with pytest.raises(GenerationParseError, match="only allowed for MCQ"):
            parse_generated_questions(json.dumps([item]), numerical_rule, 1)


class TestGenerateQuestions:

    def test_single_call_with_context(self, mcq_rule, fake_gpt):
        items = asyncio.run(generate_questions(mcq_rule, 3, "Chunk about linear equations."))

        assert len(items) == 3
        assert len(fake_gpt.calls) == 1
        call = fake_gpt.calls[0]
        assert call["prompt"].startswith("Context Book Knowledge:")
        assert "Generate exactly 3" in call["system"]

    def test_general_knowledge_without_context(self, mcq_rule, fake_gpt):
        asyncio.run(generate_questions(mcq_rule, 1, ""))

        assert fake_gpt.calls[0]["prompt"] == GENERAL_KNOWLEDGE_PROMPT
