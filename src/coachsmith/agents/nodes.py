from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Union

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END

from coachsmith.errors import QueryExecutionError, ScopingError
from coachsmith.logger import get_logger
from coachsmith.query_execution.sql_executor import QueryExecutor
from coachsmith.query_processing.context_augmenter import ContextAugmenter
from coachsmith.query_processing.sql_generator import SQLGenerator
from coachsmith.query_processing.sql_scoping import scope_to_user
from coachsmith.utils.caching import ResponseCache
from coachsmith.utils.llm_tracker import LLMTracker

from .models import CoachState

logger = get_logger(__name__)


def _tracker(config: Optional[RunnableConfig]) -> Optional[LLMTracker]:
    return ((config or {}).get("configurable") or {}).get("llm_tracker")


class CoachNodes:
    """Data-gathering steps of a coach request.

    Every node returns only the keys it owns so the primary and
    augmentation branches can run in the same superstep.
    """

    def __init__(
        self,
        *,
        cache: ResponseCache,
        sql_generator: SQLGenerator,
        executor: QueryExecutor,
        augmenter: ContextAugmenter,
    ) -> None:
        self.cache = cache
        self.sql_generator = sql_generator
        self.executor = executor
        self.augmenter = augmenter

    # Node: cache lookup (buffered requests only)
    async def cache_lookup(self, state: CoachState) -> Dict[str, Any]:
        q = state.question
        if q.streaming_requested:
            logger.info("[supervisor] streaming requested; skipping cache lookup")
            return {}
        return {"cached": self.cache.get(q.user_id, q.text)}

    def route_after_cache(self, state: CoachState) -> Union[str, List[str]]:
        if state.cached is not None:
            logger.info("[supervisor] cache hit; skipping generation")
            return END
        return ["generate_sql", "augment_context"]

    # Node: SQL generation
    async def generate_sql(self, state: CoachState, config: RunnableConfig) -> Dict[str, Any]:
        t0 = time.perf_counter()
        q = state.question
        query = await self.sql_generator.generate(q.text, state.schema_text, q.user_id, tracker=_tracker(config))
        dt_ms = (time.perf_counter() - t0) * 1000.0
        update: Dict[str, Any] = {"query": query, "timings": {"sql_generation_ms": round(dt_ms, 2)}}
        if query.is_empty:
            update["errors"] = ["sql_generation: no SQL generated"]
        return update

    # Node: SQL execution
    async def execute_sql(self, state: CoachState) -> Dict[str, Any]:
        if state.query.is_empty:
            logger.info("[sql-exec] no SQL to execute; continuing without data")
            return {"primary_rows": []}

        try:
            sql = scope_to_user(state.query.sql_text, state.question.user_id)
        except ScopingError as e:
            logger.warning(f"[sql-exec] refusing to execute unscoped SQL: {e}")
            return {"primary_rows": [], "errors": [f"scoping: {e}"]}

        t0 = time.perf_counter()
        try:
            rows = await self.executor.execute(sql)
        except QueryExecutionError as e:
            logger.error(f"[sql-exec] SQL execution error: {e}; failed SQL: {sql}")
            return {"primary_rows": [], "errors": [f"sql_execution: {e}"]}

        dt_ms = (time.perf_counter() - t0) * 1000.0
        logger.info(f"[sql-exec] query returned {len(rows)} rows in {dt_ms:.1f}ms")
        return {"primary_rows": rows, "timings": {"sql_execution_ms": round(dt_ms, 2)}}

    # Node: page context augmentation
    async def augment_context(self, state: CoachState, config: RunnableConfig) -> Dict[str, Any]:
        q = state.question
        if not q.page_context:
            return {}
        t0 = time.perf_counter()
        result = await self.augmenter.augment(q.page_context, state.schema_text, q.user_id, tracker=_tracker(config))
        dt_ms = (time.perf_counter() - t0) * 1000.0
        return {"auxiliary": result, "timings": {"augmentation_ms": round(dt_ms, 2)}}
