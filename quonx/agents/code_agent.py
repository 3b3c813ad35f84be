"""Code Agent for generating, fixing and reviewing code."""
import re
import time
from typing import Any, Dict, Optional
import logging

from quonx.agents.base_agent import BaseAgent
from quonx.agents.classification import (
    CRITICAL_CODE_INDICATORS,
    VALIDATION_KEYWORDS,
)
from quonx.agents.runtime import AgentRuntime
from quonx.config import Settings
from quonx.errors import InvalidPathError, NotFoundError, UnreadableFileError
from quonx.models.schemas import AgentRequest, CodeBlock, CodeResult
from quonx.utils.file_store import ProjectFileStore
from quonx.utils.text import extract_code_blocks, truncate_text

logger = logging.getLogger(__name__)

KNOWN_LANGUAGES = [
    "python", "javascript", "typescript", "java", "golang", "rust", "c++",
    "c#", "ruby", "php", "kotlin", "swift", "sql", "bash",
]

FILE_EXTENSIONS = {
    ".py": "python", ".js": "javascript", ".jsx": "javascript", ".ts": "typescript",
    ".tsx": "typescript", ".java": "java", ".go": "go", ".rs": "rust", ".cpp": "cpp",
    ".cs": "csharp", ".rb": "ruby", ".php": "php", ".kt": "kotlin", ".swift": "swift",
    ".sql": "sql", ".sh": "bash",
}


class CodeAgent(BaseAgent):
    """Agent specialized in writing and reviewing code."""

    agent_type = "code"

    def __init__(
        self,
        runtime: AgentRuntime,
        settings: Settings,
        file_store: Optional[ProjectFileStore] = None
    ):
        super().__init__(
            name="Code Agent",
            description="Generates, fixes and reviews code",
            runtime=runtime,
            settings=settings
        )
        self.file_store = file_store
        self.system_prompts.update({
            "default": """You are the code agent of the Quonx multi-agent coding assistant. You write correct, idiomatic, well-structured code.

Guidelines:
- Put all code in fenced code blocks with a language tag
- Prefer small, readable functions and clear names
- Mention assumptions briefly after the code
- Keep prose short; the Reasoning and Chat agents handle long explanations
""",
            "implementer": """You are the implementer in a multi-agent team. Another agent interprets the request and another analyzes it; your only job is a working implementation.

Focus on:
- A complete, runnable solution in fenced code blocks
- Handling the obvious edge cases
- Following the conventions of the current project and file
""",
            "reviewer": """You are a code reviewer. Point out defects, risky constructs and missing edge cases, and show corrected code in fenced code blocks.
""",
        })

    def get_capabilities(self) -> str:
        """Get agent capabilities description."""
        return """I can help you with:
- Writing functions, classes and scripts
- Fixing bugs and refactoring existing code
- Reviewing code for defects and edge cases
"""

    async def _process(self, request: AgentRequest, request_id: str) -> CodeResult:
        start = time.perf_counter()

        context = await self._build_context(request, request_id)
        language = self._detect_target_language(request.input, context)

        prompt = self._build_prompt(request.input, context, language)
        generation = await self.runtime.generate(
            request.model,
            prompt,
            {
                **request.options,
                "temperature": request.options.get("temperature", 0.2),
                "max_tokens": request.options.get("max_tokens", self.settings.max_tokens),
                "messages": self._build_messages(
                    self.get_system_prompt(request.role), prompt, self._history(request)
                ),
            }
        )

        text = self._post_process(generation.text)
        blocks = [CodeBlock(**block) for block in extract_code_blocks(text)]
        code = "\n\n".join(block.code for block in blocks) or None
        if blocks and blocks[0].language != "text":
            language = blocks[0].language

        needs_validation = request.role != "reviewer" and self.classifier.needs(
            request.input, VALIDATION_KEYWORDS, CRITICAL_CODE_INDICATORS
        )
        validation_request = f"Validate this code for: {request.input}" if needs_validation else None

        context["generated_code"] = code
        context["language"] = language

        processing_time = time.perf_counter() - start
        logger.info(
            f"Code agent completed request {request_id} in {processing_time:.2f}s "
            f"({len(blocks)} code blocks, needs_validation={needs_validation})"
        )

        return CodeResult(
            agent=self.agent_type,
            response=text,
            context=context,
            code=code,
            language=language or "text",
            code_blocks=blocks,
            needs_validation=needs_validation,
            validation_request=validation_request,
            metadata={
                "processing_time": processing_time,
                "model": generation.model_id,
                "provider": generation.provider,
                "usage": generation.usage.model_dump(),
                "language": language or "text",
                "code_blocks": len(blocks),
                "role": request.role,
            }
        )

    async def _build_context(self, request: AgentRequest, request_id: str) -> Dict[str, Any]:
        context = self._base_context(request, request_id)

        current_file = context.get("current_file")
        if isinstance(current_file, dict):
            content = current_file.get("content")
            if content is None and isinstance(current_file.get("path"), str) and self.file_store:
                content = await self._read_current_file(current_file["path"], request_id)
            if isinstance(content, str) and content:
                context["file_content"] = truncate_text(content)

        return context

    async def _read_current_file(self, path: str, request_id: str) -> Optional[str]:
        try:
            return await self.file_store.read(path)
        except (NotFoundError, InvalidPathError, UnreadableFileError) as e:
            logger.warning(f"Could not read current file for request {request_id}: {e.message}")
            return None

    @staticmethod
    def _detect_target_language(text: str, context: Dict[str, Any]) -> Optional[str]:
        """Language from the current file, else the first language named in the input."""
        current_file = context.get("current_file")
        if isinstance(current_file, dict):
            if current_file.get("language"):
                return current_file["language"]
            path = str(current_file.get("path") or current_file.get("name") or "")
            for extension, language in FILE_EXTENSIONS.items():
                if path.endswith(extension):
                    return language

        lowered = text.lower()
        for language in KNOWN_LANGUAGES:
            if re.search(rf"(?<![\w+#]){re.escape(language)}(?![\w+#])", lowered):
                return language
        return None

    def _build_prompt(self, text: str, context: Dict[str, Any], language: Optional[str]) -> str:
        sections = []

        summary = self._context_summary(context)
        if summary:
            sections.append(summary)

        if context.get("file_content"):
            file_language = language or "text"
            sections.append(f"Current file content:\n```{file_language}\n{context['file_content']}\n```")

        chat_context = context.get("chat_context")
        if isinstance(chat_context, dict) and isinstance(chat_context.get("user_profile"), dict):
            sections.append(f"User expertise: {chat_context['user_profile'].get('expertise', 'unknown')}")

        sections.append(f"Request: {text}")
        if language:
            sections.append(f"Write the solution in {language}.")

        return "\n\n".join(sections)
