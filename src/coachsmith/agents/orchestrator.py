from __future__ import annotations

from typing import AsyncIterator, Callable, List, Optional, Union

from langgraph.graph import END, StateGraph

from coachsmith.errors import GenerationError
from coachsmith.llm.gateway import GeminiGateway, ModelStream
from coachsmith.logger import get_logger
from coachsmith.query_execution.sql_executor import QueryExecutor
from coachsmith.query_processing.context_augmenter import ContextAugmenter
from coachsmith.query_processing.sql_generator import SQLGenerator
from coachsmith.schema_intelligence.schema_provider import SchemaProvider
from coachsmith.synthesis.answer_synthesizer import AnswerSynthesizer
from coachsmith.utils.caching import CacheEntry, ResponseCache
from coachsmith.utils.llm_tracker import LLMTracker

from .models import CoachReply, CoachState, DataInfo, Question
from .nodes import CoachNodes

logger = get_logger(__name__)


class CoachReplyStream:
    """Streamed answer.

    Forwards model fragments as they arrive and keeps the full text. The
    completion callback runs only if the model channel finished normally; a
    failure part-way through ends the stream with a readable error line.
    """

    def __init__(self, stream: ModelStream, on_complete: Callable[[str], None]):
        self.model = stream.model
        self._stream = stream
        self._on_complete = on_complete
        self.text = ""

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        parts: List[str] = []
        try:
            async for fragment in self._stream:
                parts.append(fragment)
                yield fragment
        except Exception as e:
            logger.error(f"[synth] streaming error after {len(parts)} chunks: {e}")
            yield f"\n\nError: {e}"
            return
        finally:
            await self._stream.aclose()

        self.text = "".join(parts)
        logger.info(f"[synth] streaming complete: {len(parts)} chunks, {len(self.text)} chars")
        self._on_complete(self.text)


class CoachOrchestrator:
    """LangGraph-based orchestrator for coach requests."""

    def __init__(
        self,
        *,
        gateway: GeminiGateway,
        cache: ResponseCache,
        executor: QueryExecutor,
        schema_provider: SchemaProvider,
        max_prompt_rows: int = 50,
        max_prompt_chars: int = 12000,
        sample_rows: int = 3,
    ) -> None:
        self.cache = cache
        self.schema_provider = schema_provider
        self.sample_rows = sample_rows
        self.synthesizer = AnswerSynthesizer(
            gateway, max_prompt_rows=max_prompt_rows, max_prompt_chars=max_prompt_chars
        )
        self.nodes = CoachNodes(
            cache=cache,
            sql_generator=SQLGenerator(gateway),
            executor=executor,
            augmenter=ContextAugmenter(gateway, executor),
        )
        logger.info("[supervisor] building orchestration graph (cache -> [sql -> execute | augment])")
        self.graph = self._build_graph()

    def _build_graph(self):
        g = StateGraph(CoachState)

        # Define nodes
        g.add_node("cache_lookup", self.nodes.cache_lookup)
        g.add_node("generate_sql", self.nodes.generate_sql)
        g.add_node("execute_sql", self.nodes.execute_sql)
        g.add_node("augment_context", self.nodes.augment_context)

        # Edges: a hit ends the run, a miss fans out to both branches
        g.add_conditional_edges(
            "cache_lookup",
            self.nodes.route_after_cache,
            ["generate_sql", "augment_context", END],
        )
        g.add_edge("generate_sql", "execute_sql")
        g.add_edge("execute_sql", END)
        g.add_edge("augment_context", END)

        # Entry
        g.set_entry_point("cache_lookup")
        return g.compile()

    async def gather(self, question: Question, tracker: Optional[LLMTracker] = None) -> CoachState:
        """Run the data-gathering graph for one question."""
        state = CoachState(question=question, schema_text=self.schema_provider.describe())
        result = await self.graph.ainvoke(state, config={"configurable": {"llm_tracker": tracker}})

        # Handle both dict and CoachState returns from LangGraph
        final = CoachState(**result) if isinstance(result, dict) else result
        if final.errors:
            logger.info(f"[supervisor] degraded steps: {final.errors}")
        return final

    def _prompt(self, state: CoachState) -> str:
        q = state.question
        return self.synthesizer.build_prompt(
            q.text,
            state.primary_rows,
            state.auxiliary,
            state.schema_text,
            primary_sql=state.query.sql_text,
            page_context=q.page_context,
            page_data=q.page_data,
        )

    def _data_info(self, state: CoachState) -> DataInfo:
        rows = state.primary_rows
        return DataInfo(
            sql_query=state.query.sql_text,
            result_count=len(rows),
            has_data=bool(rows),
            sample_data=rows[: self.sample_rows] if rows else None,
        )

    @staticmethod
    def _cached_reply(entry: CacheEntry) -> CoachReply:
        return CoachReply(
            reply=entry.response_text,
            cached=True,
            debug={"sqlQuery": entry.sql_query or "No SQL generated", "resultCount": entry.result_count},
        )

    def _remember(self, state: CoachState, text: str) -> None:
        if not text.strip():
            logger.warning("[cache-set] skipped: empty answer")
            return
        q = state.question
        self.cache.put(
            q.user_id,
            q.text,
            text,
            sql_query=state.query.sql_text or None,
            result_count=len(state.primary_rows),
        )

    async def _answer_buffered(self, state: CoachState, prompt: str, tracker: LLMTracker) -> CoachReply:
        result = await self.synthesizer.synthesize(prompt, tracker)
        self._remember(state, result.text)
        tracker.log_summary()
        return CoachReply(reply=result.text, cached=False, data_info=self._data_info(state))

    async def answer(self, question: Question) -> CoachReply:
        """Buffered answer, served from the cache when possible."""
        logger.info("[supervisor] received question; starting orchestration")
        tracker = LLMTracker()
        state = await self.gather(question, tracker)
        if state.cached is not None:
            return self._cached_reply(state.cached)
        return await self._answer_buffered(state, self._prompt(state), tracker)

    async def open_answer_stream(self, question: Question) -> Union[CoachReplyStream, CoachReply]:
        """Streamed answer; falls back to a buffered reply if the stream cannot be opened."""
        logger.info("[supervisor] received question; starting orchestration (stream)")
        tracker = LLMTracker()
        state = await self.gather(question, tracker)
        if state.cached is not None:
            return self._cached_reply(state.cached)

        prompt = self._prompt(state)
        try:
            stream = await self.synthesizer.open_stream(prompt, tracker)
        except GenerationError as e:
            logger.warning(f"[synth] could not open stream, falling back to buffered reply: {e}")
            return await self._answer_buffered(state, prompt, tracker)

        def on_complete(text: str) -> None:
            self._remember(state, text)
            tracker.log_summary()

        return CoachReplyStream(stream, on_complete)
