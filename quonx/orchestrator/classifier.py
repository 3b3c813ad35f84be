"""Workflow classification strategies."""
from typing import Any, Mapping, Protocol, Sequence

from quonx.config import Settings
from quonx.models.schemas import WorkflowKind


class WorkflowClassifier(Protocol):
    """Maps raw input to one of the workflow kinds."""

    def classify(self, text: str, context: Mapping[str, Any]) -> WorkflowKind:
        ...


class KeywordWorkflowClassifier:
    """
    Substring heuristic over two configurable keyword sets.

    Code indicators are checked before reasoning indicators, so input that
    matches both runs code-first. Collaborative is never chosen here; callers
    request it explicitly.
    """

    def __init__(self, code_keywords: Sequence[str], reasoning_keywords: Sequence[str]):
        self.code_keywords = [keyword.lower() for keyword in code_keywords]
        self.reasoning_keywords = [keyword.lower() for keyword in reasoning_keywords]

    @classmethod
    def from_settings(cls, settings: Settings) -> "KeywordWorkflowClassifier":
        return cls(settings.code_workflow_keywords, settings.reasoning_workflow_keywords)

    def classify(self, text: str, context: Mapping[str, Any]) -> WorkflowKind:
        lowered = text.lower()
        if any(keyword in lowered for keyword in self.code_keywords):
            return WorkflowKind.CODE_FIRST
        if any(keyword in lowered for keyword in self.reasoning_keywords):
            return WorkflowKind.REASONING_FIRST
        return WorkflowKind.CHAT_FIRST
