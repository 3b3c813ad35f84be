"""Workflow classification and multi-agent orchestration."""
from quonx.orchestrator.agent_orchestrator import AgentOrchestrator, build_orchestrator
from quonx.orchestrator.classifier import KeywordWorkflowClassifier, WorkflowClassifier

__all__ = ["AgentOrchestrator", "KeywordWorkflowClassifier", "WorkflowClassifier", "build_orchestrator"]
