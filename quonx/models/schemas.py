"""Data models and schemas for the orchestration service."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from quonx.utils.text import sanitize_input


class WorkflowKind(str, Enum):
    """Strategies for sequencing agent calls."""
    CHAT_FIRST = "chat-first"
    CODE_FIRST = "code-first"
    REASONING_FIRST = "reasoning-first"
    COLLABORATIVE = "collaborative"


AUTO_WORKFLOW = "auto"

AgentType = Literal["chat", "code", "reasoning"]


class Turn(BaseModel):
    """One message in a conversation."""
    role: Literal["user", "assistant"] = Field(description="Message role")
    content: str = Field(description="Message content")
    timestamp: datetime = Field(default_factory=datetime.now, description="Turn timestamp")
    workflow: Optional[str] = Field(default=None, description="Workflow that produced an assistant turn")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional metadata")


class Conversation(BaseModel):
    """Ordered turn history keyed by an opaque id."""
    id: str = Field(description="Conversation identifier")
    turns: List[Turn] = Field(default_factory=list, description="Append-only turn history")
    context: Dict[str, Any] = Field(default_factory=dict, description="Context supplied at creation")
    created_at: datetime = Field(default_factory=datetime.now, description="Creation time")
    updated_at: datetime = Field(default_factory=datetime.now, description="Last update time")


class AgentRequest(BaseModel):
    """Request to an agent."""
    input: str = Field(description="Text the agent should respond to")
    conversation: List[Turn] = Field(default_factory=list, description="Recent turns, read only")
    context: Dict[str, Any] = Field(default_factory=dict, description="Layered request context")
    model: str = Field(default="default", description="Model identifier or 'default'")
    role: str = Field(default="default", description="Role the agent should play")
    options: Dict[str, Any] = Field(default_factory=dict, description="Generation options")

    @field_validator("input")
    @classmethod
    def input_not_empty(cls, value: str) -> str:
        value = sanitize_input(value)
        if not value:
            raise ValueError("input must not be empty")
        return value

    @field_validator("model", "role")
    @classmethod
    def default_when_blank(cls, value: str) -> str:
        return value or "default"


class AgentResult(BaseModel):
    """Response from an agent."""
    agent: str = Field(description="Agent type that produced this result")
    response: str = Field(description="Response text")
    context: Dict[str, Any] = Field(default_factory=dict, description="Context, possibly enriched")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Agent metadata")


class ChatResult(AgentResult):
    """Chat agent result with its delegation decision."""
    strategy: str = Field(default="conversational", description="Response strategy used")
    needs_code: bool = Field(default=False, description="Code agent should follow")
    needs_reasoning: bool = Field(default=False, description="Reasoning agent should follow")
    code_request: Optional[str] = Field(default=None, description="Derived request for the code agent")
    reasoning_request: Optional[str] = Field(default=None, description="Derived request for the reasoning agent")


class CodeBlock(BaseModel):
    """Fenced code block found in a response."""
    language: str = Field(default="text", description="Fence language")
    code: str = Field(description="Block contents")


class CodeResult(AgentResult):
    """Code agent result."""
    code: Optional[str] = Field(default=None, description="Extracted code, if any")
    language: str = Field(default="text", description="Primary language of the solution")
    code_blocks: List[CodeBlock] = Field(default_factory=list, description="All fenced code blocks")
    needs_validation: bool = Field(default=False, description="Reasoning agent should validate")
    validation_request: Optional[str] = Field(default=None, description="Derived validation request")


class ReasoningResult(AgentResult):
    """Reasoning agent result."""
    needs_implementation: bool = Field(default=False, description="Code agent should follow")
    implementation_request: Optional[str] = Field(default=None, description="Derived request for the code agent")
    analysis_points: List[str] = Field(default_factory=list, description="Enumerated points of the analysis")
    confidence: float = Field(default=0.7, ge=0.0, le=1.0, description="Self-reported confidence")


class WorkflowMetadata(BaseModel):
    """Execution trace of one workflow run."""
    workflow: str = Field(description="Workflow kind that ran")
    steps: List[str] = Field(default_factory=list, description="Agents executed, in order")
    agents: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="Per-agent metadata")


class WorkflowResult(BaseModel):
    """Combined response of one workflow run."""
    response: str = Field(description="Combined response text")
    metadata: WorkflowMetadata = Field(description="Execution trace")


class ProcessResponse(BaseModel):
    """Response returned from Orchestrator.process."""
    response: str = Field(description="Combined response text")
    workflow: str = Field(description="Workflow kind that ran")
    conversation_id: str = Field(description="Conversation the exchange was recorded in")
    metadata: WorkflowMetadata = Field(description="Execution trace")
    request_id: str = Field(description="Correlation id")
    timestamp: datetime = Field(default_factory=datetime.now, description="Completion time")


class PreviousQuestion(BaseModel):
    question: str
    timestamp: datetime = Field(default_factory=datetime.now)


class UserProfile(BaseModel):
    """Per-user record owned by the chat agent."""
    user_id: str = Field(description="User identifier")
    expertise: Literal["beginner", "intermediate", "expert"] = Field(default="beginner")
    interests: List[str] = Field(default_factory=list, description="At most 10, oldest evicted")
    previous_questions: List[PreviousQuestion] = Field(default_factory=list, description="At most 20, oldest evicted")
    preferences: Dict[str, Any] = Field(default_factory=dict)


class TaskNote(BaseModel):
    description: str
    status: Literal["pending", "done"] = "pending"
    timestamp: datetime = Field(default_factory=datetime.now)


class ConversationContext(BaseModel):
    """Per-conversation topics and tasks owned by the chat agent."""
    topics: List[str] = Field(default_factory=list, description="At most 20, deduplicated")
    tasks: List[TaskNote] = Field(default_factory=list, description="At most 10")
    last_updated: datetime = Field(default_factory=datetime.now)


class AgentMetrics(BaseModel):
    """Running counters of one agent instance."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_response_time: float = 0.0
    average_response_time: float = 0.0
    uptime: float = 0.0
    success_rate: float = 0.0


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class GenerationResult(BaseModel):
    """Output of the model access layer."""
    text: str = Field(description="Generated text")
    usage: Usage = Field(default_factory=Usage, description="Token accounting")
    finish_reason: Optional[str] = Field(default=None, description="Provider finish reason")
    model_id: str = Field(description="Registered model id that served the call")
    provider: str = Field(description="Provider tag")
    processing_time: float = Field(default=0.0, description="Seconds spent in the provider")


# HTTP request bodies

class CreateConversationRequest(BaseModel):
    context: Dict[str, Any] = Field(default_factory=dict, description="Initial context")


class ProcessRequest(BaseModel):
    input: str = Field(description="User input")
    conversation_id: Optional[str] = Field(default=None, description="Existing or new conversation id")
    context: Dict[str, Any] = Field(default_factory=dict, description="Caller context")
    workflow: str = Field(default=AUTO_WORKFLOW, description="Workflow kind or 'auto'")
    models: Dict[str, str] = Field(default_factory=dict, description="Per-agent model overrides")


class UpdateContextRequest(BaseModel):
    conversation_id: str = Field(description="Conversation identifier")
    context: Dict[str, Any] = Field(default_factory=dict, description="Fragment to merge")


class LoadModelRequest(BaseModel):
    provider: str = Field(description="Provider tag")
    model_name: str = Field(description="Provider-side model name")
    model_id: Optional[str] = Field(default=None, description="Registry id, derived when omitted")
    base_url: Optional[str] = Field(default=None, description="Endpoint for local providers")


class WriteFileRequest(BaseModel):
    path: str = Field(description="Path relative to the project root")
    content: str = Field(description="New file content")
