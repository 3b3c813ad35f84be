"""Reasoning Agent for analysis, validation and synthesis."""
import re
import time
from typing import Any, Dict, List, Optional, Tuple
import logging

from quonx.agents.base_agent import BaseAgent
from quonx.agents.classification import (
    DEEP_ANALYSIS_INDICATORS,
    IMPLEMENTATION_KEYWORDS,
    IMPLEMENTATION_PHRASES,
    derive_request,
)
from quonx.agents.runtime import AgentRuntime
from quonx.config import Settings
from quonx.models.schemas import AgentRequest, ReasoningResult
from quonx.utils.text import contains_any, extract_keywords, parse_json_safely

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.7

CONFIDENCE_BLOCK = re.compile(r"```json\s*\n(\{[\s\S]*?\})\s*```\s*$")
ANALYSIS_POINT = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+(.+?)\s*$", re.MULTILINE)


class ReasoningAgent(BaseAgent):
    """Agent specialized in step-by-step analysis of problems and solutions."""

    agent_type = "reasoning"

    def __init__(self, runtime: AgentRuntime, settings: Settings):
        super().__init__(
            name="Reasoning Agent",
            description="Analyzes problems, validates solutions and synthesizes perspectives",
            runtime=runtime,
            settings=settings
        )
        self.system_prompts.update({
            "default": """You are the reasoning agent of the Quonx multi-agent coding assistant. You think problems through step by step before answering.

Guidelines:
- Break the problem into numbered steps
- State assumptions and trade-offs explicitly
- Prefer precise technical language over vague claims
""",
            "analyzer": """You are the analyzer in a multi-agent team. Another agent interprets the request and another implements it; your job is the analysis: approach, complexity, risks and alternatives, as a numbered list.
""",
            "validator": """You are validating a solution produced by another agent. Check correctness, edge cases, complexity and security, and list each finding as a numbered point. Say plainly whether the solution is correct.
""",
            "synthesizer": """You are the synthesis agent responsible for combining multiple perspectives into a coherent response. Integrate the interpretation, implementation and analysis you are given into one clear, actionable answer, resolving any conflicts between them.
""",
        })

    def get_capabilities(self) -> str:
        """Get agent capabilities description."""
        return """I can help you with:
- Explaining how algorithms and systems work
- Comparing approaches and weighing trade-offs
- Validating code for correctness and edge cases
"""

    async def _process(self, request: AgentRequest, request_id: str) -> ReasoningResult:
        start = time.perf_counter()

        context = self._base_context(request, request_id)
        depth = self._analysis_depth(request)

        prompt = self._build_prompt(request.input, context, request.role)
        max_tokens = self.settings.max_tokens * 2 if depth == "deep" else self.settings.max_tokens
        generation = await self.runtime.generate(
            request.model,
            prompt,
            {
                **request.options,
                "temperature": request.options.get("temperature", 0.3),
                "max_tokens": request.options.get("max_tokens", max_tokens),
                "messages": self._build_messages(
                    self.get_system_prompt(request.role), prompt, self._history(request)
                ),
            }
        )

        text, confidence = self._split_confidence(generation.text)
        text = self._post_process(text)
        points = self._extract_analysis_points(text)

        needs_implementation = request.role == "default" and self.classifier.needs(
            request.input, IMPLEMENTATION_KEYWORDS, IMPLEMENTATION_PHRASES
        )
        implementation_request = None
        if needs_implementation:
            implementation_request = derive_request(request.input, "Implementation request", "Implement")

        context["analysis_points"] = points

        processing_time = time.perf_counter() - start
        logger.info(
            f"Reasoning agent completed request {request_id} in {processing_time:.2f}s "
            f"(depth={depth}, needs_implementation={needs_implementation})"
        )

        return ReasoningResult(
            agent=self.agent_type,
            response=text,
            context=context,
            needs_implementation=needs_implementation,
            implementation_request=implementation_request,
            analysis_points=points,
            confidence=confidence,
            metadata={
                "processing_time": processing_time,
                "model": generation.model_id,
                "provider": generation.provider,
                "usage": generation.usage.model_dump(),
                "depth": depth,
                "confidence": confidence,
                "key_terms": extract_keywords(request.input, 5),
                "role": request.role,
            }
        )

    @staticmethod
    def _analysis_depth(request: AgentRequest) -> str:
        if request.role == "synthesizer" or contains_any(request.input, DEEP_ANALYSIS_INDICATORS):
            return "deep"
        return "standard"

    def _build_prompt(self, text: str, context: Dict[str, Any], role: str) -> str:
        sections = []

        summary = self._context_summary(context)
        if summary:
            sections.append(summary)

        if role == "synthesizer":
            perspectives = self._perspectives(context)
            if perspectives:
                sections.append("\n\n".join(perspectives))

        sections.append(f"Task: {text}")
        sections.append(
            'Finish with a fenced json block of the form {"confidence": <0.0-1.0>} '
            "rating your confidence in the answer."
        )
        return "\n\n".join(sections)

    @staticmethod
    def _split_confidence(text: str) -> Tuple[str, float]:
        """Remove a trailing confidence block; malformed blocks fall back to the default."""
        match = CONFIDENCE_BLOCK.search(text.strip())
        if not match:
            return text, DEFAULT_CONFIDENCE

        remaining = text.strip()[:match.start()].rstrip()
        data = parse_json_safely(match.group(1))
        confidence: Optional[float] = None
        if isinstance(data, dict):
            try:
                confidence = float(data.get("confidence"))
            except (TypeError, ValueError):
                confidence = None

        if confidence is None:
            return remaining, DEFAULT_CONFIDENCE
        return remaining, max(0.0, min(1.0, confidence))

    @staticmethod
    def _extract_analysis_points(text: str) -> List[str]:
        without_code = re.sub(r"```[\s\S]*?```", "", text)
        return [match.group(1) for match in ANALYSIS_POINT.finditer(without_code)][:20]
