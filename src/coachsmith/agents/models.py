import operator
from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, Field

from coachsmith.query_processing.context_augmenter import AugmentationResult
from coachsmith.query_processing.sql_generator import GeneratedQuery
from coachsmith.utils.caching import CacheEntry


@dataclass(frozen=True)
class Question:
    """One inbound coach question. Never persisted."""

    user_id: str
    text: str
    page_context: Optional[str] = None
    page_data: Any = None
    streaming_requested: bool = False


@dataclass
class DataInfo:
    sql_query: str
    result_count: int
    has_data: bool
    sample_data: Optional[List[Dict[str, Any]]] = None


@dataclass
class CoachReply:
    reply: str
    cached: bool = False
    data_info: Optional[DataInfo] = None
    debug: Optional[Dict[str, Any]] = None


def merge_timings(left: Dict[str, float], right: Dict[str, float]) -> Dict[str, float]:
    return {**left, **right}


class CoachState(BaseModel):
    question: Question
    schema_text: str = ""
    cached: Optional[CacheEntry] = None
    query: GeneratedQuery = Field(default_factory=GeneratedQuery)
    primary_rows: List[Dict[str, Any]] = Field(default_factory=list)
    auxiliary: AugmentationResult = Field(default_factory=AugmentationResult)
    # parallel branches append here
    errors: Annotated[List[str], operator.add] = Field(default_factory=list)
    timings: Annotated[Dict[str, float], merge_timings] = Field(default_factory=dict)


__all__ = [
    "AugmentationResult",
    "CoachReply",
    "CoachState",
    "DataInfo",
    "GeneratedQuery",
    "Question",
]
