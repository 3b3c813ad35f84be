"""Models package initialization."""
from quonx.models.schemas import (
    AgentMetrics,
    AgentRequest,
    AgentResult,
    ChatResult,
    CodeResult,
    Conversation,
    ConversationContext,
    GenerationResult,
    ProcessResponse,
    ReasoningResult,
    Turn,
    UserProfile,
    WorkflowKind,
    WorkflowMetadata,
    WorkflowResult,
)

__all__ = [
    'AgentMetrics',
    'AgentRequest',
    'AgentResult',
    'ChatResult',
    'CodeResult',
    'Conversation',
    'ConversationContext',
    'GenerationResult',
    'ProcessResponse',
    'ReasoningResult',
    'Turn',
    'UserProfile',
    'WorkflowKind',
    'WorkflowMetadata',
    'WorkflowResult',
]
