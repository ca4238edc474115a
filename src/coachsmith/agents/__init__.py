"""Agents package providing request orchestration for CoachSmith."""

from .orchestrator import CoachOrchestrator, CoachReplyStream

__all__ = ["CoachOrchestrator", "CoachReplyStream"]
