"""
End-to-end tests of the coach pipeline with fake Gemini and database.
"""

import pytest

from coachsmith.agents import CoachOrchestrator, CoachReplyStream
from coachsmith.agents.models import Question
from coachsmith.errors import GenerationUnavailable, QueryExecutionError
from coachsmith.utils.caching import ResponseCache

from fakes import FakeExecutor, FakeGenAI, FakeSchemaProvider, make_gateway

COUNT_SQL = '{"sql_query": "SELECT COUNT(*) AS count FROM properties"}'
SCOPED_COUNT_SQL = "SELECT COUNT(*) AS count FROM properties WHERE properties.user_id = 'U1'"


def count_answer(prompt):
    return "You have 3 properties." if '"count": 3' in prompt else "I could not find your properties."


def build(genai, executor=None, cache=None):
    executor = executor or FakeExecutor(rows=[{"count": 3}])
    cache = cache or ResponseCache(ttl_seconds=300, max_entries=100)
    orchestrator = CoachOrchestrator(
        gateway=make_gateway(genai),
        cache=cache,
        executor=executor,
        schema_provider=FakeSchemaProvider(),
    )
    return orchestrator, executor, cache


@pytest.mark.asyncio
async def test_question_answered_from_scoped_query():
    genai = FakeGenAI(sql=COUNT_SQL, answer=count_answer)
    orchestrator, executor, _ = build(genai)

    reply = await orchestrator.answer(Question(user_id="U1", text="How many properties do I have?"))

    assert reply.reply == "You have 3 properties."
    assert reply.cached is False
    assert executor.calls == [SCOPED_COUNT_SQL]
    assert reply.data_info.sql_query == SCOPED_COUNT_SQL
    assert reply.data_info.result_count == 1
    assert reply.data_info.has_data is True
    assert reply.data_info.sample_data == [{"count": 3}]
    assert genai.kinds() == ["sql", "answer"]


@pytest.mark.asyncio
async def test_garbage_sql_still_answers_without_data():
    genai = FakeGenAI(sql="Sorry, I can't help with that.", answer="Focus on occupancy this month.")
    orchestrator, executor, _ = build(genai)

    reply = await orchestrator.answer(Question(user_id="U1", text="What should I do?"))

    assert reply.reply == "Focus on occupancy this month."
    assert executor.calls == []
    assert reply.data_info.sql_query == ""
    assert reply.data_info.has_data is False
    assert reply.data_info.sample_data is None
    assert "No specific data found" in genai.prompts["answer"][0]


@pytest.mark.asyncio
async def test_execution_failure_degrades_to_no_data():
    genai = FakeGenAI(sql=COUNT_SQL, answer=count_answer)
    orchestrator, executor, _ = build(genai, FakeExecutor(error=QueryExecutionError("timeout")))

    reply = await orchestrator.answer(Question(user_id="U1", text="How many properties do I have?"))

    assert reply.reply == "I could not find your properties."
    assert reply.data_info.sql_query == SCOPED_COUNT_SQL
    assert reply.data_info.result_count == 0


@pytest.mark.asyncio
async def test_other_users_never_share_rows():
    genai = FakeGenAI(sql='{"sql_query": "SELECT address FROM properties WHERE user_id = \'U2\' OR 1=1"}')
    orchestrator, executor, _ = build(genai)

    await orchestrator.answer(Question(user_id="U1", text="Show me every property"))

    assert executor.calls == [
        "SELECT address FROM properties WHERE properties.user_id = 'U1' AND (user_id = 'U2' OR 1=1)"
    ]


@pytest.mark.asyncio
async def test_second_buffered_question_is_served_from_cache():
    genai = FakeGenAI(sql=COUNT_SQL, answer=count_answer)
    orchestrator, executor, cache = build(genai)

    first = await orchestrator.answer(Question(user_id="U1", text="How many properties do I have?"))
    second = await orchestrator.answer(Question(user_id="U1", text="  how many PROPERTIES   do i have? "))

    assert first.cached is False
    assert second.cached is True
    assert second.reply == first.reply
    assert second.data_info is None
    assert second.debug == {"sqlQuery": SCOPED_COUNT_SQL, "resultCount": 1}
    assert len(executor.calls) == 1
    assert genai.kinds() == ["sql", "answer"]


@pytest.mark.asyncio
async def test_cache_is_per_user():
    genai = FakeGenAI(sql=COUNT_SQL, answer=count_answer)
    orchestrator, executor, _ = build(genai)

    await orchestrator.answer(Question(user_id="U1", text="How many properties do I have?"))
    other = await orchestrator.answer(Question(user_id="U2", text="How many properties do I have?"))

    assert other.cached is False
    assert executor.calls[1] == "SELECT COUNT(*) AS count FROM properties WHERE properties.user_id = 'U2'"


@pytest.mark.asyncio
async def test_empty_streamed_answer_is_not_cached():
    genai = FakeGenAI(sql=COUNT_SQL, chunks=[])
    orchestrator, _, cache = build(genai)

    stream = await orchestrator.open_answer_stream(
        Question(user_id="U1", text="How many properties do I have?", streaming_requested=True)
    )

    assert [f async for f in stream] == []
    assert cache.size() == 0


@pytest.mark.asyncio
async def test_whitespace_streamed_answer_is_delivered_but_not_cached():
    genai = FakeGenAI(sql=COUNT_SQL, chunks=["  ", "\n"])
    orchestrator, _, cache = build(genai)

    stream = await orchestrator.open_answer_stream(
        Question(user_id="U1", text="How many properties do I have?", streaming_requested=True)
    )

    assert [f async for f in stream] == ["  ", "\n"]
    assert cache.size() == 0
    assert [streamed for _, kind, streamed in genai.calls if kind == "answer"] == [True]


@pytest.mark.asyncio
async def test_no_model_available_fails_the_request():
    genai = FakeGenAI(answer=lambda prompt: "")
    orchestrator, _, cache = build(genai)

    with pytest.raises(GenerationUnavailable):
        await orchestrator.answer(Question(user_id="U1", text="anything"))
    assert cache.size() == 0


@pytest.mark.asyncio
async def test_stream_skips_cache_and_fills_it_on_completion():
    genai = FakeGenAI(sql=COUNT_SQL, chunks=["You have ", "3 properties."])
    orchestrator, executor, cache = build(genai)
    cache.put("U1", "How many properties do I have?", "stale answer")

    stream = await orchestrator.open_answer_stream(
        Question(user_id="U1", text="How many properties do I have?", streaming_requested=True)
    )
    assert isinstance(stream, CoachReplyStream)
    fragments = [f async for f in stream]

    assert fragments == ["You have ", "3 properties."]
    assert stream.text == "You have 3 properties."
    assert executor.calls == [SCOPED_COUNT_SQL]
    entry = cache.get("U1", "How many properties do I have?")
    assert entry.response_text == "You have 3 properties."
    assert entry.sql_query == SCOPED_COUNT_SQL
    assert entry.result_count == 1


@pytest.mark.asyncio
async def test_mid_stream_failure_ends_with_error_line_and_is_not_cached():
    genai = FakeGenAI(
        sql=COUNT_SQL,
        chunks=["You have ", "3 ", "properties."],
        stream_error=RuntimeError("connection reset"),
        stream_fail_after=2,
    )
    orchestrator, _, cache = build(genai)

    stream = await orchestrator.open_answer_stream(
        Question(user_id="U1", text="How many properties do I have?", streaming_requested=True)
    )
    fragments = [f async for f in stream]

    assert fragments == ["You have ", "3 ", "\n\nError: connection reset"]
    assert cache.size() == 0


@pytest.mark.asyncio
async def test_stream_open_failure_falls_back_to_buffered_reply():
    genai = FakeGenAI(sql=COUNT_SQL, answer=count_answer, stream_open_error=RuntimeError("stream refused"))
    orchestrator, _, cache = build(genai)

    outcome = await orchestrator.open_answer_stream(
        Question(user_id="U1", text="How many properties do I have?", streaming_requested=True)
    )

    assert not isinstance(outcome, CoachReplyStream)
    assert outcome.reply == "You have 3 properties."
    assert outcome.data_info.result_count == 1
    assert cache.size() == 1
    assert [stream for _, kind, stream in genai.calls if kind == "answer"] == [True, False]


@pytest.mark.asyncio
async def test_page_context_runs_augmentation_alongside_primary_query():
    genai = FakeGenAI(
        sql='{"sql_query": "SELECT SUM(monthly_gross_rent) AS rent FROM properties"}',
        context='{"sql_query": "SELECT address, status FROM properties LIMIT 20"}',
        answer=lambda prompt: "Two of your doors are vacant." if "vacant" in prompt else "No idea.",
    )
    executor = FakeExecutor(
        rows_for={
            "SUM(monthly_gross_rent)": [{"rent": 4200.0}],
            "address, status": [{"address": "1 Elm", "status": "vacant"}],
        }
    )
    orchestrator, executor, _ = build(genai, executor)

    reply = await orchestrator.answer(
        Question(user_id="U1", text="How is my rent looking?", page_context="properties")
    )

    assert sorted(genai.kinds()[:2]) == ["context", "sql"]
    assert genai.kinds()[2] == "answer"
    assert len(executor.calls) == 2
    assert "SELECT address, status FROM properties WHERE properties.user_id = 'U1' LIMIT 20" in executor.calls
    assert reply.reply == "Two of your doors are vacant."
    assert reply.data_info.sample_data == [{"rent": 4200.0}]
    answer_prompt = genai.prompts["answer"][0]
    assert '"rent": 4200.0' in answer_prompt
    assert "**Automatic Context Data (from database):**" in answer_prompt
    assert 'The user is on the "properties" page.' in answer_prompt


@pytest.mark.asyncio
async def test_gather_records_timings_and_degraded_steps():
    genai = FakeGenAI(sql="not sql")
    orchestrator, _, _ = build(genai)

    state = await orchestrator.gather(Question(user_id="U1", text="hello"))

    assert state.query.is_empty
    assert "sql_generation_ms" in state.timings
    assert state.errors == ["sql_generation: no SQL generated"]
