"""Base agent interface for all specialized agents."""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Union
import logging

from quonx.agents.classification import KeywordClassifier
from quonx.agents.runtime import AgentRuntime
from quonx.config import Settings
from quonx.errors import InvalidRequestError
from quonx.models.schemas import AgentMetrics, AgentRequest, AgentResult, Turn
from quonx.utils.text import cleanup_response, format_code_blocks, truncate_text

logger = logging.getLogger(__name__)

PERSPECTIVES = [
    ("chat_perspective", "Interpretation"),
    ("code_perspective", "Implementation"),
    ("reasoning_perspective", "Analysis"),
]


class BaseAgent(ABC):
    """Abstract base class for all agents."""

    agent_type: str = "base"

    def __init__(self, name: str, description: str, runtime: AgentRuntime, settings: Settings):
        """
        Initialize the base agent.

        Args:
            name: Agent name
            description: Agent description/capabilities
            runtime: Metrics, timeout and model access for this agent
            settings: Application settings
        """
        self.name = name
        self.description = description
        self.runtime = runtime
        self.settings = settings
        self.classifier = KeywordClassifier(settings.classification_threshold)
        self.system_prompts: Dict[str, str] = {"default": self._default_system_prompt()}

    async def process(
        self,
        request: Union[AgentRequest, Mapping[str, Any]],
        request_id: str
    ) -> AgentResult:
        """
        Process a request.

        Args:
            request: Agent request, or a mapping validated into one
            request_id: Correlation id for logs and errors

        Returns:
            Agent result with response, context and metadata

        Raises:
            InvalidRequestError: Malformed request, before any model call
            GenerationFailedError: Model layer failure
            AgentTimeoutError: The call exceeded the agent timeout
        """
        try:
            validated = self.runtime.validate(request, request_id)
        except InvalidRequestError:
            self.runtime.record_failure()
            raise

        logger.info(
            f"{self.name} processing request {request_id} "
            f"(role={validated.role}, model={validated.model}, input_length={len(validated.input)})"
        )
        return await self.runtime.execute(request_id, lambda: self._process(validated, request_id))

    @abstractmethod
    async def _process(self, request: AgentRequest, request_id: str) -> AgentResult:
        """Agent-specific classification, prompt assembly, generation and post-processing."""
        pass

    @abstractmethod
    def get_capabilities(self) -> str:
        """
        Get a description of the agent's capabilities.

        Returns:
            String describing what this agent can do
        """
        pass

    def _default_system_prompt(self) -> str:
        return f"""You are {self.name}, part of the Quonx multi-agent coding assistant.

Your capabilities: {self.get_capabilities()}

Guidelines:
- Be helpful, accurate, and concise
- If you cannot handle a request, clearly state so
- Provide structured information when appropriate
"""

    def get_system_prompt(self, role: str) -> str:
        """System preamble for a role, the default one if the role is unknown."""
        return self.system_prompts.get(role) or self.system_prompts["default"]

    def _build_messages(
        self,
        system_prompt: str,
        prompt: str,
        history: Optional[List[Turn]] = None
    ) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt}]
        for turn in history or []:
            messages.append({"role": turn.role, "content": turn.content})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _history(self, request: AgentRequest) -> List[Turn]:
        return list(request.conversation[-self.settings.history_window:])

    def _context_summary(self, context: Dict[str, Any]) -> str:
        """Project, file and prior-agent summaries for a prompt. Non-mapping values are left alone."""
        lines = []

        project = context.get("project_context")
        if isinstance(project, dict):
            lines.append(f"Project Context: {project.get('summary', 'Unknown project')}")
            if isinstance(project.get("technologies"), list) and project["technologies"]:
                lines.append(f"Technologies: {', '.join(str(t) for t in project['technologies'])}")

        current_file = context.get("file_context")
        if isinstance(current_file, dict):
            name = current_file.get("name", "Unknown file")
            lines.append(f"Current File: {name} ({current_file.get('language', 'text')})")
            if current_file.get("summary"):
                lines.append(f"File Summary: {current_file['summary']}")

        code_context = context.get("code_context")
        if isinstance(code_context, dict) and code_context.get("generated_code"):
            language = code_context.get("language", "text")
            code = truncate_text(str(code_context["generated_code"]), 2000)
            lines.append(f"Code produced earlier in this workflow:\n```{language}\n{code}\n```")

        reasoning_context = context.get("reasoning_context")
        if isinstance(reasoning_context, dict) and isinstance(reasoning_context.get("analysis_points"), list):
            points = "\n".join(f"- {point}" for point in reasoning_context["analysis_points"])
            if points:
                lines.append(f"Analysis produced earlier in this workflow:\n{points}")

        return "\n".join(lines)

    @staticmethod
    def _perspectives(context: Dict[str, Any]) -> List[str]:
        return [
            f"{label} perspective:\n{context[key]}"
            for key, label in PERSPECTIVES
            if context.get(key)
        ]

    @staticmethod
    def _analyze_project_context(project_info: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "summary": project_info.get("name") or "Unknown project",
            "technologies": project_info.get("technologies") or [],
            "structure": project_info.get("structure") or "Unknown",
            "size": project_info.get("file_count") or 0,
        }

    @staticmethod
    def _analyze_file_context(file_info: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "name": file_info.get("name") or file_info.get("path") or "Unknown file",
            "language": file_info.get("language") or "text",
            "summary": file_info.get("summary") or "No summary available",
            "size": file_info.get("size") or 0,
        }

    def _base_context(self, request: AgentRequest, request_id: str) -> Dict[str, Any]:
        """Caller context plus history and project/file summaries; unknown keys pass through."""
        context = dict(request.context)
        context["request_id"] = request_id
        context["conversation_history"] = [
            turn.model_dump(mode="json") for turn in self._history(request)
        ]

        if isinstance(context.get("project_info"), dict):
            context["project_context"] = self._analyze_project_context(context["project_info"])

        if isinstance(context.get("current_file"), dict):
            context["file_context"] = self._analyze_file_context(context["current_file"])

        return context

    def _post_process(self, text: str) -> str:
        return format_code_blocks(cleanup_response(text))

    def metrics(self) -> AgentMetrics:
        return self.runtime.metrics()

    async def check_health(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "type": self.agent_type,
            "metrics": self.metrics().model_dump(),
        }
