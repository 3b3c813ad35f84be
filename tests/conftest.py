"""
Pytest configuration and fixtures.
"""
import asyncio
from typing import Any, Dict, List, Optional

import pytest

from quonx.config import Settings
from quonx.models.schemas import GenerationResult, Usage
from quonx.orchestrator import build_orchestrator

CHAT_TEXT = "Here is a friendly answer for you."

CODE_TEXT = """Here is the solution:

```python
def reverse_string(value):
    return value[::-1]
```"""

REASONING_TEXT = """Step by step analysis:

1. The input is split into characters
2. Slicing walks them in reverse order

```json
{"confidence": 0.85}
```"""

SCRIPTED_RESPONSES = {
    "chat": CHAT_TEXT,
    "code": CODE_TEXT,
    "reasoning": REASONING_TEXT,
}


class ScriptedModelManager:
    """Model access double answering by agent role and recording every call."""

    def __init__(
        self,
        responses: Optional[Dict[str, str]] = None,
        fail_roles: Optional[set] = None,
        delays: Optional[Dict[str, float]] = None
    ):
        self.responses = {**SCRIPTED_RESPONSES, **(responses or {})}
        self.fail_roles = fail_roles or set()
        self.delays = delays or {}
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, model_id: str, prompt: str, options: Optional[Dict[str, Any]] = None) -> GenerationResult:
        options = options or {}
        role = options.get("role", "chat")
        self.calls.append({"model_id": model_id, "prompt": prompt, "options": options, "role": role})

        if self.delays.get(role):
            await asyncio.sleep(self.delays[role])
        if role in self.fail_roles:
            raise RuntimeError(f"{role} provider is down")

        return GenerationResult(
            text=self.responses[role],
            usage=Usage(prompt_tokens=10, completion_tokens=20, total_tokens=30),
            finish_reason="stop",
            model_id=model_id if model_id != "default" else f"scripted-{role}",
            provider="scripted"
        )

    def roles_called(self) -> List[str]:
        return [call["role"] for call in self.calls]

    def list_models(self) -> Dict[str, Any]:
        return {"models": [{"model_id": "scripted", "provider": "custom"}], "providers": ["custom"]}

    def health(self) -> Dict[str, Any]:
        return {"status": "healthy", "models": {"total": 1, "local": 0, "api": 1}}


@pytest.fixture
def project_dir(tmp_path):
    """Small project tree for file store tests."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("print('hello')\n", encoding="utf-8")
    (root / "README.md").write_text("# Demo\n", encoding="utf-8")
    (root / "node_modules").mkdir()
    return root


@pytest.fixture
def settings(tmp_path, project_dir):
    return Settings(
        _env_file=None,
        project_root=str(project_dir),
        local_memory_path=str(tmp_path / "conversations"),
        ollama_discovery=False,
        agent_timeout_seconds=5.0,
    )


@pytest.fixture
def make_model_manager():
    """Factory for model doubles with custom responses, failures or delays."""
    return ScriptedModelManager


@pytest.fixture
def model_manager():
    return ScriptedModelManager()


@pytest.fixture
def orchestrator(settings, model_manager):
    return build_orchestrator(settings, model_manager=model_manager)
