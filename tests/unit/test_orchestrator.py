"""
Tests for workflow classification and execution in the orchestrator.
"""
import asyncio

import pytest

from quonx.errors import AgentTimeoutError, GenerationFailedError, InvalidRequestError, NotFoundError, UnknownWorkflowError
from quonx.models.schemas import AgentRequest, WorkflowKind
from quonx.orchestrator import build_orchestrator

CHAT_CODE_INPUT = "write and build a program to create and develop a method"


class TestWorkflows:
    """Execution order and step reporting for each workflow kind"""

    @pytest.mark.asyncio
    async def test_code_first_end_to_end(self, orchestrator, model_manager):
        result = await orchestrator.process("write a function to reverse a string", conversation_id="c1")

        assert result.workflow == WorkflowKind.CODE_FIRST.value
        assert result.metadata.steps == ["code", "reasoning", "chat"]
        assert model_manager.roles_called() == ["code", "reasoning", "chat"]
        assert "def reverse_string" in result.response
        assert "Slicing walks them in reverse order" in result.response
        assert "Here is a friendly answer for you." in result.response
        assert set(result.metadata.agents) == {"code", "reasoning", "chat"}

    @pytest.mark.asyncio
    async def test_code_first_chains_context(self, orchestrator, model_manager):
        await orchestrator.process("write a function to reverse a string")

        reasoning_prompt = model_manager.calls[1]["prompt"]
        chat_prompt = model_manager.calls[2]["prompt"]
        assert "Analyze and explain this code solution: def reverse_string" in reasoning_prompt
        assert "Explain this solution to the user:" in chat_prompt
        assert "Analysis produced earlier in this workflow" in chat_prompt

    @pytest.mark.asyncio
    async def test_reasoning_first_without_implementation(self, orchestrator, model_manager):
        result = await orchestrator.process("explain how quicksort works")

        assert result.workflow == WorkflowKind.REASONING_FIRST.value
        assert result.metadata.steps == ["reasoning", "chat"]
        assert "Make this analysis user-friendly:" in model_manager.calls[1]["prompt"]

    @pytest.mark.asyncio
    async def test_reasoning_first_with_implementation(self, orchestrator, model_manager):
        result = await orchestrator.process(
            "explain how to implement a linked list", workflow="reasoning-first"
        )

        assert result.metadata.steps == ["reasoning", "code", "chat"]
        assert "Implementation request: linked list" in model_manager.calls[1]["prompt"]

    @pytest.mark.asyncio
    async def test_chat_first_chat_only(self, orchestrator):
        result = await orchestrator.process("hello there")

        assert result.workflow == WorkflowKind.CHAT_FIRST.value
        assert result.metadata.steps == ["chat"]
        assert result.response == "Here is a friendly answer for you."

    @pytest.mark.asyncio
    async def test_chat_first_delegates_to_code(self, orchestrator, model_manager):
        result = await orchestrator.process(CHAT_CODE_INPUT, workflow="chat-first")

        assert result.metadata.steps == ["chat", "code"]
        assert result.response.split("\n\n")[0] == "Here is a friendly answer for you."
        assert "Code request:" in model_manager.calls[1]["prompt"]

    @pytest.mark.asyncio
    async def test_chat_first_validates_critical_code(self, orchestrator, model_manager):
        result = await orchestrator.process(f"{CHAT_CODE_INPUT} for production", workflow="chat-first")

        assert result.metadata.steps == ["chat", "code", "reasoning"]
        assert model_manager.calls[2]["prompt"].count("Validate this code: def reverse_string") == 1
        assert model_manager.calls[2]["options"]["messages"][0]["content"] == \
            orchestrator.reasoning_agent.system_prompts["validator"]

    @pytest.mark.asyncio
    async def test_collaborative(self, orchestrator, model_manager):
        result = await orchestrator.process("anything at all", workflow="collaborative")

        assert result.metadata.steps == ["parallel-processing", "synthesis"]
        assert len(model_manager.calls) == 4
        assert sorted(model_manager.roles_called()[:3]) == ["chat", "code", "reasoning"]
        assert model_manager.roles_called()[3] == "reasoning"
        assert set(result.metadata.agents) == {"chat", "code", "reasoning", "synthesis"}
        assert "Synthesize these three perspectives" in model_manager.calls[3]["prompt"]
        assert "Implementation perspective:" in model_manager.calls[3]["prompt"]

    @pytest.mark.asyncio
    async def test_collaborative_roles(self, orchestrator, model_manager):
        await orchestrator.process("anything at all", workflow="collaborative")

        roles = {
            call["role"]: call["options"]["messages"][0]["content"]
            for call in model_manager.calls[:3]
        }
        assert roles["chat"] == orchestrator.chat_agent.system_prompts["interpreter"]
        assert roles["code"] == orchestrator.code_agent.system_prompts["implementer"]
        assert roles["reasoning"] == orchestrator.reasoning_agent.system_prompts["analyzer"]


class TestConversationRecording:
    """Turn bookkeeping around workflow execution"""

    @pytest.mark.asyncio
    async def test_two_turns_per_call(self, orchestrator):
        first = await orchestrator.process("hello there")
        await orchestrator.process("explain how quicksort works", conversation_id=first.conversation_id)

        conversation = await orchestrator.get_conversation(first.conversation_id)
        assert [t.role for t in conversation.turns] == ["user", "assistant", "user", "assistant"]
        assert conversation.turns[0].content == "hello there"
        assert conversation.turns[1].workflow == "chat-first"
        assert conversation.turns[3].workflow == "reasoning-first"
        assert conversation.turns[3].metadata["steps"] == ["reasoning", "chat"]

    @pytest.mark.asyncio
    async def test_history_reaches_agents(self, orchestrator, model_manager):
        result = await orchestrator.process("hello there")
        await orchestrator.process("and again", conversation_id=result.conversation_id)

        messages = model_manager.calls[-1]["options"]["messages"]
        assert [m["content"] for m in messages[1:3]] == ["hello there", "Here is a friendly answer for you."]

    @pytest.mark.asyncio
    async def test_collaborative_failure_records_nothing(self, settings, make_model_manager):
        manager = make_model_manager(fail_roles={"code"})
        orchestrator = build_orchestrator(settings, model_manager=manager)

        with pytest.raises(GenerationFailedError) as exc_info:
            await orchestrator.process("anything", conversation_id="c-fail", workflow="collaborative")

        assert exc_info.value.agent == "code"
        assert exc_info.value.request_id
        assert not any("Synthesize" in call["prompt"] for call in manager.calls)
        assert (await orchestrator.get_conversation("c-fail")).turns == []

    @pytest.mark.asyncio
    async def test_timeout_fails_whole_call(self, settings, make_model_manager):
        settings.agent_timeout_seconds = 0.05
        manager = make_model_manager(delays={"reasoning": 1.0})
        orchestrator = build_orchestrator(settings, model_manager=manager)

        with pytest.raises(AgentTimeoutError):
            await orchestrator.process("write a function", conversation_id="c-slow")

        assert (await orchestrator.get_conversation("c-slow")).turns == []
        assert orchestrator.reasoning_agent.metrics().failed_requests == 1

    @pytest.mark.asyncio
    async def test_concurrent_calls_same_conversation(self, orchestrator):
        await asyncio.gather(*[
            orchestrator.process(f"hello {i}", conversation_id="c-par") for i in range(5)
        ])

        turns = (await orchestrator.get_conversation("c-par")).turns
        assert len(turns) == 10
        assert [t.role for t in turns] == ["user", "assistant"] * 5


class TestValidation:

    @pytest.mark.asyncio
    async def test_empty_input(self, orchestrator, model_manager):
        with pytest.raises(InvalidRequestError):
            await orchestrator.process("   ")

        assert model_manager.calls == []

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, orchestrator, model_manager):
        with pytest.raises(UnknownWorkflowError) as exc_info:
            await orchestrator.process("hello", conversation_id="c-x", workflow="sideways")

        assert exc_info.value.to_dict()["error_code"] == "UNKNOWN_WORKFLOW"
        assert model_manager.calls == []
        with pytest.raises(NotFoundError):
            await orchestrator.get_conversation("c-x")

    @pytest.mark.asyncio
    async def test_generated_conversation_id(self, orchestrator):
        result = await orchestrator.process("hello there")

        assert result.conversation_id
        assert result.request_id


class TestContextAndAgents:
    """Direct operations exposed next to process()"""

    @pytest.mark.asyncio
    async def test_context_is_merged_into_requests(self, orchestrator, model_manager):
        conversation_id = await orchestrator.create_conversation({"project_info": {"name": "demo-app"}})
        await orchestrator.update_context(conversation_id, {"user_id": "u9"})

        await orchestrator.process("hello there", conversation_id=conversation_id)

        assert "Project Context: demo-app" in model_manager.calls[0]["prompt"]
        assert orchestrator.chat_agent.get_user_profile("u9") is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["hello there", "write a function to reverse a string"])
    async def test_plain_string_context_values(self, orchestrator, text):
        result = await orchestrator.process(
            text, conversation_id="c-str", context={"code_context": "def f(): pass", "project_context": "mono"}
        )

        assert result.response
        conversation = await orchestrator.get_conversation("c-str")
        assert len(conversation.turns) == 2

    @pytest.mark.asyncio
    async def test_get_context_idempotent(self, orchestrator):
        await orchestrator.update_context("c-ctx", {"current_file": {"path": "a.py"}})

        assert await orchestrator.get_context("c-ctx") == await orchestrator.get_context("c-ctx")

    @pytest.mark.asyncio
    async def test_model_overrides(self, orchestrator, model_manager):
        await orchestrator.process(
            "write a function", models={"code": "my-coder", "chat": ""}
        )

        by_role = {call["role"]: call["model_id"] for call in model_manager.calls}
        assert by_role["code"] == "my-coder"
        assert by_role["chat"] == "default"
        assert by_role["reasoning"] == "default"

    @pytest.mark.asyncio
    async def test_invoke_agent(self, orchestrator):
        result = await orchestrator.invoke_agent("code", {"input": "write a reverse function"})

        assert result.agent == "code"
        assert "def reverse_string" in result.response

    @pytest.mark.asyncio
    async def test_invoke_unknown_agent(self, orchestrator):
        with pytest.raises(InvalidRequestError):
            await orchestrator.invoke_agent("poet", AgentRequest(input="hi"))

    @pytest.mark.asyncio
    async def test_health(self, orchestrator):
        await orchestrator.process("hello there", context={"user_id": "u1"})
        health = await orchestrator.health()

        assert health["conversations"] == 1
        assert health["user_profiles"] == 1
        assert health["agents"]["chat"]["metrics"]["successful_requests"] == 1
        assert health["agents"]["code"]["metrics"]["total_requests"] == 0
        assert health["models"]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_custom_classifier(self, settings, model_manager):
        class AlwaysCollaborative:
            def classify(self, text, context):
                return WorkflowKind.COLLABORATIVE

        orchestrator = build_orchestrator(settings, model_manager=model_manager, classifier=AlwaysCollaborative())
        result = await orchestrator.process("hello")

        assert result.workflow == "collaborative"
