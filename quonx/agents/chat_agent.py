"""Chat Agent for conversational interpretation and user-facing explanations."""
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from quonx.agents.base_agent import BaseAgent
from quonx.agents.classification import (
    CHAT_CODE_KEYWORDS,
    CHAT_REASONING_KEYWORDS,
    DEEP_ANALYSIS_INDICATORS,
    EXPERTISE_SIGNALS,
    INTEREST_TERMS,
    TOPIC_TERMS,
    derive_request,
    extract_tasks,
)
from quonx.agents.runtime import AgentRuntime
from quonx.config import Settings
from quonx.models.schemas import (
    AgentRequest,
    ChatResult,
    ConversationContext,
    PreviousQuestion,
    TaskNote,
    UserProfile,
)
from quonx.utils.text import CODE_BLOCK_PATTERN, contains_any

logger = logging.getLogger(__name__)

MAX_INTERESTS = 10
MAX_PREVIOUS_QUESTIONS = 20
MAX_TOPICS = 20
MAX_TASKS = 10

EXPERTISE_LADDER = ["beginner", "intermediate", "expert"]

BEGINNER_TIP = "💡 *Tip: run this code yourself and change one line at a time to see what each part does.*"


@dataclass
class ResponseStrategy:
    type: str = "conversational"
    confidence: float = 0.8
    needs_code: bool = False
    needs_reasoning: bool = False
    code_request: Optional[str] = None
    reasoning_request: Optional[str] = None


def _mentions(text: str, term: str) -> bool:
    return re.search(rf"(?<![\w.]){re.escape(term)}(?![\w])", text) is not None


class ChatAgent(BaseAgent):
    """Agent specialized in conversation, interpretation and synthesis for the user."""

    agent_type = "chat"

    def __init__(self, runtime: AgentRuntime, settings: Settings):
        super().__init__(
            name="Chat Agent",
            description="Handles conversational interactions and user communication",
            runtime=runtime,
            settings=settings
        )
        self.system_prompts.update({
            "default": """You are Quonx, an advanced AI coding assistant with deep understanding of software development, architecture, and best practices. You are part of a multi-agent system where you handle conversational interactions and user communication.

Your role is to:
- Interpret user requests and provide clear, helpful responses
- Communicate technical concepts in an accessible way
- Coordinate with other specialized agents (Code and Reasoning) when needed
- Maintain context across conversations

Guidelines:
- Be conversational but professional
- Ask clarifying questions when requests are ambiguous
- Explain complex concepts clearly
""",
            "interpreter": """You are the interpreter agent in a multi-agent system. Your role is to understand user intent, clarify requirements, and translate complex technical requests into actionable tasks.

Focus on:
- Understanding what the user really wants to achieve
- Identifying ambiguities and asking clarifying questions
- Breaking down complex requests into manageable parts
- Providing context for other agents
""",
            "synthesizer": """You are the synthesis agent responsible for combining multiple perspectives into a coherent response. Take the different viewpoints from specialized agents and create a unified, comprehensive answer.

Your tasks:
- Integrate different perspectives harmoniously
- Resolve any conflicts between agent responses
- Ensure the final response is clear and actionable
- Maintain the user's original intent throughout
""",
        })
        self.conversation_context: Dict[str, ConversationContext] = {}
        self.user_profiles: Dict[str, UserProfile] = {}

    def get_capabilities(self) -> str:
        """Get agent capabilities description."""
        return """I can help you with:
- Understanding and clarifying what you want to build
- Explaining technical concepts and solutions in plain language
- Guidance on software development practices
"""

    async def _process(self, request: AgentRequest, request_id: str) -> ChatResult:
        start = time.perf_counter()

        context = self._build_context(request, request_id)
        strategy = self._determine_response_strategy(request.input, context, request.role)

        prompt = self._build_prompt(request.input, context, strategy)
        generation = await self.runtime.generate(
            request.model,
            prompt,
            {
                **request.options,
                "temperature": request.options.get("temperature", 0.7),
                "max_tokens": request.options.get("max_tokens", self.settings.max_tokens),
                "messages": self._build_messages(
                    self.get_system_prompt(request.role), prompt, self._history(request)
                ),
            }
        )

        text = self._post_process(generation.text)
        text = self._add_contextual_enhancements(text, context)
        self._update_conversation_context(request.input, text, context)

        processing_time = time.perf_counter() - start
        logger.info(
            f"Chat agent completed request {request_id} in {processing_time:.2f}s "
            f"(strategy={strategy.type})"
        )

        return ChatResult(
            agent=self.agent_type,
            response=text,
            context=context,
            strategy=strategy.type,
            needs_code=strategy.needs_code,
            needs_reasoning=strategy.needs_reasoning,
            code_request=strategy.code_request,
            reasoning_request=strategy.reasoning_request,
            metadata={
                "processing_time": processing_time,
                "model": generation.model_id,
                "provider": generation.provider,
                "usage": generation.usage.model_dump(),
                "strategy": strategy.type,
                "confidence": strategy.confidence,
                "role": request.role,
            }
        )

    def _build_context(self, request: AgentRequest, request_id: str) -> Dict[str, Any]:
        context = self._base_context(request, request_id)
        context["timestamp"] = datetime.now().isoformat()

        user_id = str(context.get("user_id") or "anonymous")
        profile = self.user_profiles.get(user_id)
        if profile is None:
            profile = UserProfile(user_id=user_id)
            self.user_profiles[user_id] = profile

        self._update_user_profile(profile, request.input)
        context["user_profile"] = profile.model_dump(mode="json")

        conversation_id = context.get("conversation_id")
        if isinstance(conversation_id, str) and conversation_id in self.conversation_context:
            previous = self.conversation_context[conversation_id]
            context["semantic_context"] = list(previous.topics)
            context["ongoing_tasks"] = [task.description for task in previous.tasks]

        return context

    def _determine_response_strategy(
        self,
        text: str,
        context: Dict[str, Any],
        role: str
    ) -> ResponseStrategy:
        """
        Decide how to respond and whether other agents are needed.

        Interpreter and synthesizer roles never delegate. Otherwise each keyword
        category above the threshold flags its agent, and deep-analysis phrases
        always flag the reasoning agent.
        """
        strategy = ResponseStrategy()

        if role == "interpreter":
            strategy.type = "interpretation"
            strategy.confidence = 0.9
        elif role == "synthesizer":
            strategy.type = "synthesis"
            strategy.confidence = 0.9
        else:
            if self.classifier.needs(text, CHAT_CODE_KEYWORDS):
                strategy.needs_code = True
                strategy.code_request = derive_request(text, "Code request", "Generate code for")
                strategy.type = "code-assisted"

            if self.classifier.needs(text, CHAT_REASONING_KEYWORDS):
                strategy.needs_reasoning = True
                strategy.reasoning_request = self._extract_reasoning_request(text)
                strategy.type = "multi-agent" if strategy.needs_code else "reasoning-assisted"

            if contains_any(text, DEEP_ANALYSIS_INDICATORS):
                strategy.needs_reasoning = True
                strategy.reasoning_request = f"Provide deep analysis for: {text}"
                strategy.type = "analysis-assisted"

        if context["user_profile"]["expertise"] == "expert":
            strategy.confidence = min(1.0, strategy.confidence + 0.1)

        return strategy

    @staticmethod
    def _extract_reasoning_request(text: str) -> str:
        lowered = text.lower()
        if "explain" in lowered:
            return f"Explain: {text}"
        if "analyze" in lowered:
            return f"Analyze: {text}"
        if "compare" in lowered:
            return f"Compare: {text}"
        return f"Provide reasoning for: {text}"

    def _build_prompt(self, text: str, context: Dict[str, Any], strategy: ResponseStrategy) -> str:
        sections = []

        profile = context["user_profile"]
        profile_line = f"User Profile: {profile['expertise']} level"
        if profile["interests"]:
            profile_line += f", interested in: {', '.join(profile['interests'])}"
        sections.append(profile_line)

        summary = self._context_summary(context)
        if summary:
            sections.append(summary)

        if strategy.type == "synthesis":
            perspectives = self._perspectives(context)
            if perspectives:
                sections.append("Agent Responses to Synthesize:\n" + "\n\n".join(perspectives))

        if isinstance(context.get("semantic_context"), list) and context["semantic_context"]:
            sections.append(f"Topics so far: {', '.join(str(t) for t in context['semantic_context'])}")

        sections.append(f"User Query: {text}")

        notes = {
            "code-assisted": "Note: You may need to coordinate with the Code agent for implementation details.",
            "reasoning-assisted": "Note: You may need to coordinate with the Reasoning agent for deep analysis.",
            "multi-agent": "Note: This query may require coordination with both Code and Reasoning agents.",
        }
        if strategy.type in notes:
            sections.append(notes[strategy.type])

        return "\n\n".join(sections)

    def _add_contextual_enhancements(self, text: str, context: Dict[str, Any]) -> str:
        if context["user_profile"]["expertise"] == "beginner":
            return CODE_BLOCK_PATTERN.sub(lambda m: f"{m.group(0)}\n\n{BEGINNER_TIP}", text)
        return text

    def _update_user_profile(self, profile: UserProfile, text: str):
        """Advance expertise on signal terms, record interests and the question."""
        lowered = text.lower()

        # Expertise only moves up
        if any(term in lowered for term in EXPERTISE_SIGNALS):
            level = EXPERTISE_LADDER.index(profile.expertise)
            profile.expertise = EXPERTISE_LADDER[min(level + 1, len(EXPERTISE_LADDER) - 1)]

        for term in INTEREST_TERMS:
            if _mentions(lowered, term) and term not in profile.interests:
                profile.interests.append(term)
        profile.interests = profile.interests[-MAX_INTERESTS:]

        profile.previous_questions.append(PreviousQuestion(question=text))
        profile.previous_questions = profile.previous_questions[-MAX_PREVIOUS_QUESTIONS:]

    def _update_conversation_context(self, text: str, response: str, context: Dict[str, Any]):
        conversation_id = context.get("conversation_id")
        if not conversation_id or not isinstance(conversation_id, str):
            return

        insights = self.conversation_context.get(conversation_id) or ConversationContext()

        topics = self._extract_topics(f"{text} {response}")
        merged = list(dict.fromkeys(insights.topics + topics))
        insights.topics = merged[-MAX_TOPICS:]

        tasks = [TaskNote(description=task) for task in extract_tasks(text)]
        if tasks:
            insights.tasks = (insights.tasks + tasks)[-MAX_TASKS:]

        insights.last_updated = datetime.now()
        self.conversation_context[conversation_id] = insights

    @staticmethod
    def _extract_topics(text: str) -> List[str]:
        lowered = text.lower()
        return [term for term in TOPIC_TERMS if _mentions(lowered, term)]

    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        profile = self.user_profiles.get(user_id)
        return profile.model_copy(deep=True) if profile else None

    def get_conversation_context(self, conversation_id: str) -> Optional[ConversationContext]:
        insights = self.conversation_context.get(conversation_id)
        return insights.model_copy(deep=True) if insights else None

    async def check_health(self) -> Dict[str, Any]:
        health = await super().check_health()
        health.update({
            "conversations": len(self.conversation_context),
            "user_profiles": len(self.user_profiles),
            "system_prompts": len(self.system_prompts),
        })
        return health
