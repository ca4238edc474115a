"""
LLM Usage Tracker and Cost Estimator

Tracks the Gemini calls made while answering one coach request and estimates
their cost.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from coachsmith.logger import get_logger

logger = get_logger(__name__)


# Pricing per 1M tokens
LLM_PRICING = {
    "gemini-2.5-flash": {"input": 0.00, "output": 0.00},
    "gemini-1.5-flash": {"input": 0.00, "output": 0.00},
    "gemini-1.5-pro": {"input": 1.25, "output": 5.00},
    "gemini-1.0-pro": {"input": 0.50, "output": 1.50},
    "gemini-pro": {"input": 0.50, "output": 1.50},
}


@dataclass
class LLMCall:
    """Represents a single LLM API call"""

    stage: str  # "sql_generation", "context_query", "synthesis", ...
    model: str
    prompt_tokens: int
    completion_tokens: int
    latency_ms: float
    prompt_chars: int = 0
    response_chars: int = 0
    streamed: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def estimate_cost(self) -> float:
        """Estimate cost in USD based on token usage and model pricing"""
        pricing = LLM_PRICING.get(self.model.replace("models/", ""), {"input": 0.0, "output": 0.0})

        input_cost = (self.prompt_tokens / 1_000_000) * pricing["input"]
        output_cost = (self.completion_tokens / 1_000_000) * pricing["output"]

        return input_cost + output_cost

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "model": self.model,
            "streamed": self.streamed,
            "tokens": {
                "prompt": self.prompt_tokens,
                "completion": self.completion_tokens,
                "total": self.total_tokens,
            },
            "latency_ms": round(self.latency_ms, 2),
            "cost_usd": round(self.estimate_cost(), 6),
            "chars": {"prompt": self.prompt_chars, "response": self.response_chars},
        }


def usage_tokens(usage: Any) -> tuple:
    """Read (prompt, completion) token counts from Gemini ``usage_metadata``."""
    if usage is None:
        return 0, 0
    prompt = getattr(usage, "prompt_token_count", 0) or 0
    completion = getattr(usage, "candidates_token_count", 0) or 0
    return int(prompt), int(completion)


class LLMTracker:
    """Tracks all LLM calls made for one request"""

    def __init__(self):
        self.calls: List[LLMCall] = []

    def track_call(
        self,
        stage: str,
        model: str,
        latency_ms: float,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        prompt_chars: int = 0,
        response_chars: int = 0,
        streamed: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> LLMCall:
        """
        Track an LLM API call

        Args:
            stage: Which stage made the call (e.g., "sql_generation", "synthesis")
            model: Model variant that answered
            latency_ms: Response time in milliseconds
            prompt_tokens: Input tokens, when reported
            completion_tokens: Output tokens, when reported
            prompt_chars: Character count of prompt
            response_chars: Character count of response
            streamed: Whether the response was delivered as a stream
            metadata: Additional metadata

        Returns:
            LLMCall object
        """
        call = LLMCall(
            stage=stage,
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=latency_ms,
            prompt_chars=prompt_chars,
            response_chars=response_chars,
            streamed=streamed,
            metadata=metadata or {},
        )
        self.calls.append(call)

        logger.info(
            f"[llm-tracker] {stage} | {model} | "
            f"tokens: {prompt_tokens}+{completion_tokens}={call.total_tokens} | "
            f"latency: {latency_ms:.1f}ms | "
            f"cost: ${call.estimate_cost():.6f}"
        )
        return call

    def get_summary(self) -> Dict[str, Any]:
        """
        Get summary of all LLM calls with cost breakdown

        Returns:
            Dictionary with summary statistics
        """
        by_stage: Dict[str, Dict[str, Any]] = {}
        for call in self.calls:
            stage = by_stage.setdefault(
                call.stage, {"calls": 0, "tokens": 0, "cost_usd": 0.0, "latency_ms": 0.0}
            )
            stage["calls"] += 1
            stage["tokens"] += call.total_tokens
            stage["cost_usd"] += call.estimate_cost()
            stage["latency_ms"] += call.latency_ms

        for stage_data in by_stage.values():
            stage_data["cost_usd"] = round(stage_data["cost_usd"], 6)
            stage_data["latency_ms"] = round(stage_data["latency_ms"], 2)

        return {
            "total_calls": len(self.calls),
            "total_tokens": sum(c.total_tokens for c in self.calls),
            "total_cost_usd": round(sum(c.estimate_cost() for c in self.calls), 6),
            "total_latency_ms": round(sum(c.latency_ms for c in self.calls), 2),
            "by_stage": by_stage,
            "calls": [call.to_dict() for call in self.calls],
        }

    def log_summary(self) -> None:
        summary = self.get_summary()
        logger.info(
            f"[llm-tracker:summary] Total: {summary['total_calls']} calls, "
            f"{summary['total_tokens']:,} tokens, "
            f"${summary['total_cost_usd']:.6f}, "
            f"{summary['total_latency_ms']:.1f}ms"
        )
        for stage, data in summary["by_stage"].items():
            logger.info(
                f"[llm-tracker:stage:{stage}] {data['calls']} calls, "
                f"{data['tokens']:,} tokens, ${data['cost_usd']:.6f}"
            )
