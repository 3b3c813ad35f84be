"""Agent orchestrator using LangGraph for workflow classification and execution."""
import asyncio
import uuid
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, TypedDict, Union
import logging

from langgraph.graph import END, StateGraph

from quonx.agents import AgentRuntime, BaseAgent, ChatAgent, CodeAgent, ReasoningAgent
from quonx.config import Settings
from quonx.errors import InvalidRequestError, UnknownWorkflowError
from quonx.memory import ContextManager, ConversationStore, create_conversation_store
from quonx.models.schemas import (
    AUTO_WORKFLOW,
    AgentRequest,
    AgentResult,
    ChatResult,
    CodeResult,
    Conversation,
    ProcessResponse,
    ReasoningResult,
    Turn,
    WorkflowKind,
    WorkflowMetadata,
    WorkflowResult,
)
from quonx.orchestrator.classifier import KeywordWorkflowClassifier, WorkflowClassifier
from quonx.utils.file_store import ProjectFileStore
from quonx.utils.model_manager import ModelManager
from quonx.utils.text import sanitize_input

logger = logging.getLogger(__name__)

WORKFLOW_NODES = {
    WorkflowKind.CHAT_FIRST.value: "chat_first",
    WorkflowKind.CODE_FIRST.value: "code_first",
    WorkflowKind.REASONING_FIRST.value: "reasoning_first",
    WorkflowKind.COLLABORATIVE.value: "collaborative",
}


class OrchestratorState(TypedDict, total=False):
    """State for the orchestrator graph."""
    input: str
    request_id: str
    conversation_id: Optional[str]
    caller_context: Dict[str, Any]
    context: Dict[str, Any]
    history: List[Turn]
    requested_workflow: str
    workflow: str
    models: Dict[str, str]
    result: WorkflowResult


class AgentOrchestrator:
    """Classifies requests into workflows and runs the chat, code and reasoning agents."""

    def __init__(
        self,
        settings: Settings,
        agents: Dict[str, BaseAgent],
        conversation_store: ConversationStore,
        context_manager: ContextManager,
        classifier: Optional[WorkflowClassifier] = None,
        model_manager: Optional[Any] = None,
        file_store: Optional[ProjectFileStore] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            settings: Application settings
            agents: Agents keyed by type; chat, code and reasoning are required
            conversation_store: Turn history
            context_manager: Per-conversation context
            classifier: Workflow classifier used for "auto" requests
            model_manager: Model access layer, closed on shutdown
            file_store: Project file access exposed to the transport layer
        """
        missing = {"chat", "code", "reasoning"} - set(agents)
        if missing:
            raise ValueError(f"Missing agents: {', '.join(sorted(missing))}")

        self.settings = settings
        self.agents = agents
        self.conversation_store = conversation_store
        self.context_manager = context_manager
        self.classifier = classifier or KeywordWorkflowClassifier.from_settings(settings)
        self.model_manager = model_manager
        self.file_store = file_store
        self.graph = self._build_graph()

    @property
    def chat_agent(self) -> ChatAgent:
        return self.agents["chat"]

    @property
    def code_agent(self) -> CodeAgent:
        return self.agents["code"]

    @property
    def reasoning_agent(self) -> ReasoningAgent:
        return self.agents["reasoning"]

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(OrchestratorState)

        workflow.add_node("prepare", self._prepare)
        workflow.add_node("classify", self._classify)
        workflow.add_node("chat_first", self._run_chat_first)
        workflow.add_node("code_first", self._run_code_first)
        workflow.add_node("reasoning_first", self._run_reasoning_first)
        workflow.add_node("collaborative", self._run_collaborative)
        workflow.add_node("record", self._record)

        workflow.set_entry_point("prepare")
        workflow.add_edge("prepare", "classify")
        workflow.add_conditional_edges(
            "classify",
            self._select_workflow,
            {node: node for node in WORKFLOW_NODES.values()}
        )
        for node in WORKFLOW_NODES.values():
            workflow.add_edge(node, "record")
        workflow.add_edge("record", END)

        return workflow.compile()

    async def initialize(self):
        if self.model_manager is not None and hasattr(self.model_manager, "initialize"):
            await self.model_manager.initialize()

    async def create_conversation(self, context: Optional[Mapping[str, Any]] = None) -> str:
        """Create a conversation with optional initial context and return its id."""
        conversation = await self.conversation_store.create(context=dict(context or {}))
        if context:
            await self.context_manager.update(conversation.id, context)
        return conversation.id

    async def get_conversation(self, conversation_id: str) -> Conversation:
        return await self.conversation_store.get(conversation_id)

    async def update_context(self, conversation_id: str, context: Mapping[str, Any]) -> Dict[str, Any]:
        if not conversation_id:
            raise InvalidRequestError("conversation_id is required")
        return await self.context_manager.update(conversation_id, context)

    async def get_context(self, conversation_id: str) -> Dict[str, Any]:
        return await self.context_manager.get(conversation_id)

    async def process(
        self,
        input: str,
        conversation_id: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
        workflow: str = AUTO_WORKFLOW,
        models: Optional[Mapping[str, str]] = None,
        request_id: Optional[str] = None
    ) -> ProcessResponse:
        """
        Process a user input through the workflow graph.

        Args:
            input: User input, required and non-empty
            conversation_id: Existing or new conversation id; generated when omitted
            context: Caller context merged into the conversation's context
            workflow: One of the workflow kinds or "auto"
            models: Per-agent model overrides keyed by chat, code and reasoning
            request_id: Correlation id; generated when omitted

        Returns:
            Combined response with the workflow trace

        Raises:
            InvalidRequestError: Empty input
            UnknownWorkflowError: Unrecognized workflow selector
            QuonxError: Any agent failure; no turns are recorded
        """
        request_id = request_id or str(uuid.uuid4())
        initial_state: OrchestratorState = {
            "input": input,
            "request_id": request_id,
            "conversation_id": conversation_id,
            "caller_context": dict(context or {}),
            "context": {},
            "history": [],
            "requested_workflow": workflow or AUTO_WORKFLOW,
            "workflow": "",
            "models": dict(models or {}),
        }

        final_state = await self.graph.ainvoke(initial_state)
        result: WorkflowResult = final_state["result"]

        return ProcessResponse(
            response=result.response,
            workflow=final_state["workflow"],
            conversation_id=final_state["conversation_id"],
            metadata=result.metadata,
            request_id=request_id
        )

    async def invoke_agent(
        self,
        agent_type: str,
        request: Union[AgentRequest, Mapping[str, Any]],
        request_id: Optional[str] = None
    ) -> AgentResult:
        """Run a single agent directly, bypassing workflow selection."""
        request_id = request_id or str(uuid.uuid4())
        agent = self.agents.get(agent_type)
        if agent is None:
            raise InvalidRequestError(
                f"Unknown agent type: {agent_type}. Expected one of: chat, code, reasoning",
                request_id=request_id
            )
        return await agent.process(request, request_id)

    async def _prepare(self, state: OrchestratorState) -> Dict[str, Any]:
        request_id = state["request_id"]
        text = sanitize_input(state["input"])
        if not text:
            raise InvalidRequestError("Input is required and must be a non-empty string", request_id=request_id)

        requested = state["requested_workflow"]
        if requested != AUTO_WORKFLOW and requested not in WORKFLOW_NODES:
            raise UnknownWorkflowError(requested, request_id=request_id)

        conversation_id = state.get("conversation_id") or str(uuid.uuid4())
        caller_context = state["caller_context"]

        await self.conversation_store.get_or_create(conversation_id, caller_context)
        if caller_context:
            await self.context_manager.update(conversation_id, caller_context)
        context = await self.context_manager.get(conversation_id)
        context["conversation_id"] = conversation_id

        history = await self.conversation_store.recent_turns(conversation_id, self.settings.history_window)

        logger.info(
            f"Processing request {request_id} for conversation {conversation_id} "
            f"(workflow={requested}, history={len(history)} turns)"
        )
        return {
            "input": text,
            "conversation_id": conversation_id,
            "context": context,
            "history": history,
        }

    async def _classify(self, state: OrchestratorState) -> Dict[str, Any]:
        requested = state["requested_workflow"]
        if requested != AUTO_WORKFLOW:
            return {"workflow": requested}

        workflow = WorkflowKind(self.classifier.classify(state["input"], state["context"]))
        logger.info(f"Classified request {state['request_id']} as {workflow.value}")
        return {"workflow": workflow.value}

    def _select_workflow(self, state: OrchestratorState) -> str:
        return WORKFLOW_NODES[state["workflow"]]

    def _request(
        self,
        state: OrchestratorState,
        agent_type: str,
        text: str,
        context: Dict[str, Any],
        role: str = "default"
    ) -> AgentRequest:
        return AgentRequest(
            input=text,
            conversation=state["history"],
            context=context,
            model=state["models"].get(agent_type) or "default",
            role=role
        )

    async def _run_chat_first(self, state: OrchestratorState) -> Dict[str, Any]:
        request_id = state["request_id"]
        context = state["context"]
        steps: List[str] = []
        agents: Dict[str, Dict[str, Any]] = {}
        responses: List[str] = []

        chat: ChatResult = await self.chat_agent.process(
            self._request(state, "chat", state["input"], context), request_id
        )
        steps.append("chat")
        agents["chat"] = chat.metadata
        responses.append(chat.response)

        if chat.needs_code:
            code: CodeResult = await self.code_agent.process(
                self._request(
                    state, "code", chat.code_request or state["input"],
                    {**context, "chat_context": chat.context}
                ),
                request_id
            )
            steps.append("code")
            agents["code"] = code.metadata
            responses.append(code.response)

            if code.needs_validation:
                reasoning: ReasoningResult = await self.reasoning_agent.process(
                    self._request(
                        state, "reasoning", f"Validate this code: {code.code or code.response}",
                        {**context, "code_context": code.context}, role="validator"
                    ),
                    request_id
                )
                steps.append("reasoning")
                agents["reasoning"] = reasoning.metadata
                responses.append(reasoning.response)

        return {"result": self._combine(WorkflowKind.CHAT_FIRST, steps, agents, responses)}

    async def _run_code_first(self, state: OrchestratorState) -> Dict[str, Any]:
        request_id = state["request_id"]
        context = state["context"]

        code: CodeResult = await self.code_agent.process(
            self._request(state, "code", state["input"], context), request_id
        )

        reasoning: ReasoningResult = await self.reasoning_agent.process(
            self._request(
                state, "reasoning",
                f"Analyze and explain this code solution: {code.code or code.response}",
                {**context, "code_context": code.context}
            ),
            request_id
        )

        chat: ChatResult = await self.chat_agent.process(
            self._request(
                state, "chat", f"Explain this solution to the user: {reasoning.response}",
                {**context, "code_context": code.context, "reasoning_context": reasoning.context}
            ),
            request_id
        )

        return {"result": self._combine(
            WorkflowKind.CODE_FIRST,
            ["code", "reasoning", "chat"],
            {"code": code.metadata, "reasoning": reasoning.metadata, "chat": chat.metadata},
            [code.response, reasoning.response, chat.response]
        )}

    async def _run_reasoning_first(self, state: OrchestratorState) -> Dict[str, Any]:
        request_id = state["request_id"]
        context = state["context"]

        reasoning: ReasoningResult = await self.reasoning_agent.process(
            self._request(state, "reasoning", state["input"], context), request_id
        )

        if reasoning.needs_implementation:
            code: CodeResult = await self.code_agent.process(
                self._request(
                    state, "code", reasoning.implementation_request or state["input"],
                    {**context, "reasoning_context": reasoning.context}
                ),
                request_id
            )
            chat: ChatResult = await self.chat_agent.process(
                self._request(
                    state, "chat",
                    "Provide a comprehensive response based on this analysis and implementation",
                    {**context, "reasoning_context": reasoning.context, "code_context": code.context}
                ),
                request_id
            )
            return {"result": self._combine(
                WorkflowKind.REASONING_FIRST,
                ["reasoning", "code", "chat"],
                {"reasoning": reasoning.metadata, "code": code.metadata, "chat": chat.metadata},
                [reasoning.response, code.response, chat.response]
            )}

        chat = await self.chat_agent.process(
            self._request(
                state, "chat", f"Make this analysis user-friendly: {reasoning.response}",
                {**context, "reasoning_context": reasoning.context}
            ),
            request_id
        )
        return {"result": self._combine(
            WorkflowKind.REASONING_FIRST,
            ["reasoning", "chat"],
            {"reasoning": reasoning.metadata, "chat": chat.metadata},
            [reasoning.response, chat.response]
        )}

    async def _run_collaborative(self, state: OrchestratorState) -> Dict[str, Any]:
        """Fan out to all three agents, then synthesize with the reasoning agent."""
        request_id = state["request_id"]
        context = state["context"]
        text = state["input"]

        tasks = [
            asyncio.create_task(self.chat_agent.process(
                self._request(state, "chat", text, context, role="interpreter"), request_id
            )),
            asyncio.create_task(self.code_agent.process(
                self._request(state, "code", text, context, role="implementer"), request_id
            )),
            asyncio.create_task(self.reasoning_agent.process(
                self._request(state, "reasoning", text, context, role="analyzer"), request_id
            )),
        ]
        try:
            chat, code, reasoning = await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            logger.error(f"Collaborative workflow failed for request {request_id}; skipping synthesis")
            raise

        synthesis: ReasoningResult = await self.reasoning_agent.process(
            self._request(
                state, "reasoning",
                "Synthesize these three perspectives into a comprehensive response",
                {
                    **context,
                    "chat_perspective": chat.response,
                    "code_perspective": code.response,
                    "reasoning_perspective": reasoning.response,
                },
                role="synthesizer"
            ),
            request_id
        )

        return {"result": WorkflowResult(
            response=synthesis.response,
            metadata=WorkflowMetadata(
                workflow=WorkflowKind.COLLABORATIVE.value,
                steps=["parallel-processing", "synthesis"],
                agents={
                    "chat": chat.metadata,
                    "code": code.metadata,
                    "reasoning": reasoning.metadata,
                    "synthesis": synthesis.metadata,
                }
            )
        )}

    @staticmethod
    def _combine(
        workflow: WorkflowKind,
        steps: List[str],
        agents: Dict[str, Dict[str, Any]],
        responses: List[str]
    ) -> WorkflowResult:
        return WorkflowResult(
            response="\n\n".join(responses),
            metadata=WorkflowMetadata(workflow=workflow.value, steps=steps, agents=agents)
        )

    async def _record(self, state: OrchestratorState) -> Dict[str, Any]:
        result = state["result"]
        await self.conversation_store.append_exchange(
            state["conversation_id"],
            Turn(role="user", content=state["input"]),
            Turn(
                role="assistant",
                content=result.response,
                workflow=state["workflow"],
                metadata={**result.metadata.model_dump(), "request_id": state["request_id"]}
            )
        )
        logger.info(
            f"Request {state['request_id']} completed via {state['workflow']} "
            f"(steps={result.metadata.steps})"
        )
        return {}

    def metrics(self) -> Dict[str, Any]:
        return {
            agent_type: agent.metrics().model_dump()
            for agent_type, agent in self.agents.items()
        }

    async def health(self) -> Dict[str, Any]:
        """Aggregated agent metrics, store counts and model availability."""
        agents = {}
        for agent_type, agent in self.agents.items():
            agents[agent_type] = await agent.check_health()

        health = {
            "status": "healthy",
            "agents": agents,
            "conversations": await self.conversation_store.count(),
            "contexts": self.context_manager.count(),
            "user_profiles": len(self.chat_agent.user_profiles),
            "timestamp": datetime.now().isoformat(),
        }
        if self.model_manager is not None:
            health["models"] = self.model_manager.health()
        return health

    async def shutdown(self):
        logger.info("Shutting down orchestrator")
        if self.model_manager is not None and hasattr(self.model_manager, "close"):
            await self.model_manager.close()
        await self.conversation_store.close()


def build_orchestrator(
    settings: Settings,
    model_manager: Optional[Any] = None,
    conversation_store: Optional[ConversationStore] = None,
    classifier: Optional[WorkflowClassifier] = None
) -> AgentOrchestrator:
    """Wire the model layer, agents and memory for one service instance."""
    model_manager = model_manager or ModelManager(settings)
    file_store = ProjectFileStore(settings.project_root)

    agents: Dict[str, BaseAgent] = {
        "chat": ChatAgent(AgentRuntime("chat", model_manager, settings), settings),
        "code": CodeAgent(AgentRuntime("code", model_manager, settings), settings, file_store=file_store),
        "reasoning": ReasoningAgent(AgentRuntime("reasoning", model_manager, settings), settings),
    }

    return AgentOrchestrator(
        settings=settings,
        agents=agents,
        conversation_store=conversation_store or create_conversation_store(settings),
        context_manager=ContextManager(),
        classifier=classifier,
        model_manager=model_manager,
        file_store=file_store
    )
