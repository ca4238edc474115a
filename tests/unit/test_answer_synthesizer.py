"""
Tests for answer prompt construction.
"""

import json

import pytest

from coachsmith.query_processing.context_augmenter import AugmentationResult
from coachsmith.synthesis.answer_synthesizer import AnswerSynthesizer

from fakes import FakeGenAI, make_gateway


@pytest.fixture
def synthesizer():
    return AnswerSynthesizer(make_gateway(FakeGenAI()), max_prompt_rows=50, max_prompt_chars=12000)


def test_no_data_framing(synthesizer):
    prompt = synthesizer.build_prompt("How is my portfolio?", [], AugmentationResult(), "Table: properties")

    assert "ELO AI" in prompt
    assert '**User\'s Question:** "How is my portfolio?"' in prompt
    assert "No specific data found in the database for this question." in prompt
    assert "**SQL Query Attempted:** No SQL query was generated" in prompt
    assert "Here's the data from the database" not in prompt


def test_primary_rows_take_precedence(synthesizer):
    prompt = synthesizer.build_prompt(
        "How many properties do I have?",
        [{"count": 3}],
        AugmentationResult(sql_query="SELECT address FROM properties", rows=[{"address": "1 Elm"}]),
        "Table: properties",
        primary_sql="SELECT COUNT(*) FROM properties WHERE properties.user_id = 'U1'",
    )

    data_section = prompt.split("Here's the data from the database:", 1)[1]
    assert '"count": 3' in data_section.split("**SQL Query Used:**")[0]
    assert (
        "**SQL Query Used:** SELECT COUNT(*) FROM properties WHERE properties.user_id = 'U1'; "
        "SELECT address FROM properties"
    ) in prompt
    # auxiliary rows still appear in their own block
    assert "**Automatic Context Data (from database):**" in prompt
    assert "Table: properties" in data_section


def test_auxiliary_rows_used_when_primary_empty(synthesizer):
    prompt = synthesizer.build_prompt(
        "What should I focus on?",
        [],
        AugmentationResult(sql_query="SELECT name FROM campaigns", rows=[{"name": "Spring Promo"}]),
        "schema",
    )

    data_section = prompt.split("Here's the data from the database:", 1)[1]
    assert "Spring Promo" in data_section
    assert "**SQL Query Used:** SELECT name FROM campaigns" in prompt


@pytest.mark.parametrize(
    "page, needle",
    [
        ("dashboard", "overall portfolio health"),
        ("Properties", "cash flow analysis"),
        ("property", "cash flow analysis"),
        ("agency management", "marketing ROI"),
        ("Business Hub", "revenue trends"),
        ("campaigns", "budget optimization"),
    ],
)
def test_page_guidance(synthesizer, page, needle):
    prompt = synthesizer.build_prompt("hi", [], AugmentationResult(), "schema", page_context=page)
    assert f'The user is on the "{page}" page.' in prompt
    assert needle in prompt


def test_unknown_page_has_label_only(synthesizer):
    prompt = synthesizer.build_prompt("hi", [], AugmentationResult(), "schema", page_context="settings")
    assert 'The user is on the "settings" page.' in prompt
    assert "Focus on" not in prompt


def test_page_data_only_for_objects_and_arrays(synthesizer):
    with_dict = synthesizer.build_prompt("hi", [], AugmentationResult(), "s", page_data={"roas": 3.2})
    with_list = synthesizer.build_prompt("hi", [], AugmentationResult(), "s", page_data=[1, 2])
    with_str = synthesizer.build_prompt("hi", [], AugmentationResult(), "s", page_data="roas 3.2")

    assert '"roas": 3.2' in with_dict
    assert "**Page-Specific Data Available:**" in with_list
    assert "**Page-Specific Data Available:**" not in with_str


def test_row_cap_is_marked():
    synthesizer = AnswerSynthesizer(make_gateway(FakeGenAI()), max_prompt_rows=2, max_prompt_chars=12000)
    rows = [{"id": i} for i in range(5)]

    text = synthesizer.render_json(rows)

    assert json.loads(text.split("\n(showing")[0]) == [{"id": 0}, {"id": 1}]
    assert text.endswith("(showing first 2 of 5 rows)")


def test_char_cap_is_marked():
    synthesizer = AnswerSynthesizer(make_gateway(FakeGenAI()), max_prompt_rows=50, max_prompt_chars=500)
    text = synthesizer.render_json([{"note": "x" * 2000}])
    assert text.startswith('[\n  {\n    "note": "xxx')
    assert "... [truncated" in text
    assert len(text) < 600


@pytest.mark.asyncio
async def test_synthesize_returns_model_text():
    genai = FakeGenAI(answer="You have 3 properties.")
    synthesizer = AnswerSynthesizer(make_gateway(genai))
    result = await synthesizer.synthesize("prompt with ELO AI")
    assert result.text == "You have 3 properties."
    assert genai.calls == [("gemini-pro", "answer", False)]
