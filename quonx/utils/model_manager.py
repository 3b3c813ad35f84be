"""Model access layer over local inference servers and hosted chat APIs."""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import AzureChatOpenAI, ChatOpenAI

from quonx.config import Settings
from quonx.errors import (
    GenerationFailedError,
    InvalidRequestError,
    ModelNotAvailableError,
    NotFoundError,
)
from quonx.models.schemas import GenerationResult, Usage

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    """Supported providers."""
    LLAMACPP = "llamacpp"
    OLLAMA = "ollama"
    OPENAI = "openai"
    AZURE = "azure"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    CUSTOM = "custom"


ChatModelFactory = Callable[[str, Optional[str], Settings], BaseChatModel]


@dataclass(frozen=True)
class ProviderSpec:
    kind: str  # "local" or "api"
    factory: Optional[ChatModelFactory]
    forwards_options: bool


@dataclass
class RegisteredModel:
    """A chat model the manager can route generation requests to."""
    model_id: str
    provider: ProviderKind
    model_name: str
    kind: str
    chat_model: BaseChatModel
    base_url: Optional[str] = None
    registered_at: datetime = field(default_factory=datetime.now)

    def describe(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "provider": self.provider.value,
            "model_name": self.model_name,
            "type": self.kind,
            "base_url": self.base_url,
            "registered_at": self.registered_at.isoformat(),
        }


def _build_openai(model_name: str, base_url: Optional[str], settings: Settings) -> BaseChatModel:
    return ChatOpenAI(
        api_key=settings.openai_api_key,
        model=model_name,
        temperature=settings.model_temperature,
        max_tokens=settings.max_tokens,
        timeout=settings.provider_timeout_seconds,
    )


def _build_azure(model_name: str, base_url: Optional[str], settings: Settings) -> BaseChatModel:
    return AzureChatOpenAI(
        azure_endpoint=base_url or settings.azure_openai_endpoint,
        api_key=settings.azure_openai_api_key,
        azure_deployment=model_name,
        api_version=settings.azure_api_version,
        temperature=settings.model_temperature,
        max_tokens=settings.max_tokens,
        timeout=settings.provider_timeout_seconds,
    )


def _build_gemini(model_name: str, base_url: Optional[str], settings: Settings) -> BaseChatModel:
    # Gemini model names should not include 'models/' prefix
    if model_name.startswith("models/"):
        model_name = model_name.replace("models/", "")
    return ChatGoogleGenerativeAI(
        model=model_name,
        google_api_key=settings.gemini_api_key,
        temperature=settings.model_temperature,
        max_output_tokens=settings.max_tokens,
    )


def _build_anthropic(model_name: str, base_url: Optional[str], settings: Settings) -> BaseChatModel:
    return ChatAnthropic(
        model=model_name,
        api_key=settings.anthropic_api_key,
        temperature=settings.model_temperature,
        max_tokens=settings.max_tokens,
        timeout=settings.provider_timeout_seconds,
    )


def _build_openai_compatible(model_name: str, base_url: Optional[str], settings: Settings) -> BaseChatModel:
    # llama.cpp and Ollama both serve /v1/chat/completions
    return ChatOpenAI(
        base_url=f"{base_url.rstrip('/')}/v1",
        api_key="not-needed",
        model=model_name,
        temperature=settings.model_temperature,
        max_tokens=settings.max_tokens,
        timeout=settings.provider_timeout_seconds,
    )


PROVIDERS: Dict[ProviderKind, ProviderSpec] = {
    ProviderKind.LLAMACPP: ProviderSpec(kind="local", factory=_build_openai_compatible, forwards_options=True),
    ProviderKind.OLLAMA: ProviderSpec(kind="local", factory=_build_openai_compatible, forwards_options=True),
    ProviderKind.OPENAI: ProviderSpec(kind="api", factory=_build_openai, forwards_options=True),
    ProviderKind.AZURE: ProviderSpec(kind="api", factory=_build_azure, forwards_options=True),
    ProviderKind.GEMINI: ProviderSpec(kind="api", factory=_build_gemini, forwards_options=False),
    ProviderKind.ANTHROPIC: ProviderSpec(kind="api", factory=_build_anthropic, forwards_options=True),
    ProviderKind.CUSTOM: ProviderSpec(kind="api", factory=None, forwards_options=False),
}


class ModelManager:
    """Routes generate() calls to registered chat models, with role-based defaults."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the model manager.

        Args:
            settings: Application settings
            http_client: Optional client used for local-server discovery
        """
        self.settings = settings
        self.models: Dict[str, RegisteredModel] = {}
        self._http = http_client
        self._owns_http = http_client is None

    async def initialize(self):
        """Register configured hosted models and discover local ones."""
        self._register_hosted_models()

        if self.settings.llamacpp_base_url:
            self.register_model(
                ProviderKind.LLAMACPP.value,
                self.settings.llamacpp_model,
                base_url=self.settings.llamacpp_base_url
            )

        if self.settings.ollama_discovery:
            await self.discover_ollama_models()

        logger.info(f"ModelManager initialized with {len(self.models)} models")

    def _register_hosted_models(self):
        if self.settings.openai_api_key:
            for model_name in self.settings.openai_models:
                self.register_model(ProviderKind.OPENAI.value, model_name)

        if self.settings.azure_openai_api_key and self.settings.azure_openai_endpoint:
            self.register_model(ProviderKind.AZURE.value, self.settings.azure_openai_deployment_name)

        if self.settings.gemini_api_key:
            for model_name in self.settings.gemini_models:
                self.register_model(ProviderKind.GEMINI.value, model_name)

        if self.settings.anthropic_api_key:
            for model_name in self.settings.anthropic_models:
                self.register_model(ProviderKind.ANTHROPIC.value, model_name)

    async def discover_ollama_models(self) -> int:
        """
        Register every model a local Ollama server reports.

        Returns:
            Number of models registered
        """
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=5.0)

        try:
            response = await self._http.get(f"{self.settings.ollama_base_url.rstrip('/')}/api/tags")
            response.raise_for_status()
            ollama_models = response.json().get("models", [])
        except (httpx.HTTPError, ValueError) as e:
            logger.info(f"Ollama not available: {e}")
            return 0

        registered = 0
        for entry in ollama_models:
            name = entry.get("name")
            if not name:
                continue
            try:
                self.register_model(ProviderKind.OLLAMA.value, name, base_url=self.settings.ollama_base_url)
                registered += 1
            except InvalidRequestError as e:
                logger.warning(f"Skipping Ollama model {name}: {e.message}")
                break

        logger.info(f"Found {registered} Ollama models")
        return registered

    def register_model(
        self,
        provider: str,
        model_name: str,
        model_id: Optional[str] = None,
        base_url: Optional[str] = None
    ) -> RegisteredModel:
        """
        Register a model served by a known provider.

        Args:
            provider: Provider tag
            model_name: Provider-side model name
            model_id: Registry id, defaults to "<provider>-<model_name>"
            base_url: Endpoint for local providers

        Returns:
            The registered model (existing registration if the id is taken)
        """
        try:
            kind = ProviderKind(provider)
        except ValueError:
            raise InvalidRequestError(f"Unknown provider: {provider}")

        spec = PROVIDERS[kind]
        if spec.factory is None:
            raise InvalidRequestError("Custom models must be registered with register_chat_model()")

        model_id = model_id or f"{kind.value}-{model_name}"
        if model_id in self.models:
            return self.models[model_id]

        if spec.kind == "local":
            local_count = sum(1 for m in self.models.values() if m.kind == "local")
            if local_count >= self.settings.max_local_models:
                raise InvalidRequestError("Maximum concurrent local models limit reached")
            if kind == ProviderKind.LLAMACPP:
                base_url = base_url or self.settings.llamacpp_base_url
            else:
                base_url = base_url or self.settings.ollama_base_url
            if not base_url:
                raise InvalidRequestError(f"No endpoint configured for {kind.value}")

        chat_model = spec.factory(model_name, base_url, self.settings)
        model = RegisteredModel(
            model_id=model_id,
            provider=kind,
            model_name=model_name,
            kind=spec.kind,
            chat_model=chat_model,
            base_url=base_url,
        )
        self.models[model_id] = model
        logger.info(f"Registered model {model_id} ({kind.value})")
        return model

    def register_chat_model(
        self,
        model_id: str,
        chat_model: BaseChatModel,
        kind: str = "api"
    ) -> RegisteredModel:
        """Register an already-built LangChain chat model."""
        model = RegisteredModel(
            model_id=model_id,
            provider=ProviderKind.CUSTOM,
            model_name=model_id,
            kind=kind,
            chat_model=chat_model,
        )
        self.models[model_id] = model
        logger.info(f"Registered custom chat model {model_id}")
        return model

    def unregister_model(self, model_id: str):
        if model_id not in self.models:
            raise NotFoundError(f"Model not found: {model_id}")
        del self.models[model_id]
        logger.info(f"Unregistered model {model_id}")

    def list_models(self) -> Dict[str, Any]:
        return {
            "models": [model.describe() for model in self.models.values()],
            "providers": [kind.value for kind in ProviderKind],
        }

    def resolve(self, model_id: Optional[str], role: Optional[str] = None) -> RegisteredModel:
        """
        Resolve a model id, falling back to the role's default.

        Args:
            model_id: Registered id, "default" or None
            role: chat, code or reasoning

        Returns:
            Registered model to use
        """
        if model_id and model_id in self.models:
            return self.models[model_id]

        preferences = {
            "chat": self.settings.chat_model_preference,
            "code": self.settings.code_model_preference,
            "reasoning": self.settings.reasoning_model_preference,
        }.get(role or "", [])

        for candidate in preferences:
            if candidate in self.models:
                return self.models[candidate]

        for model in self.models.values():
            if model.kind == "local":
                return model

        if self.models:
            return next(iter(self.models.values()))

        raise ModelNotAvailableError(f"Model not available: {model_id or 'default'}")

    async def generate(
        self,
        model_id: Optional[str],
        prompt: str,
        options: Optional[Dict[str, Any]] = None
    ) -> GenerationResult:
        """
        Generate text from a model.

        Args:
            model_id: Registered id or "default"
            prompt: Prompt text, used as the sole user message when no messages are given
            options: role, messages, temperature, max_tokens, stop

        Returns:
            Generated text with usage accounting
        """
        options = options or {}
        model = self.resolve(model_id, options.get("role"))
        messages = self._to_langchain_messages(prompt, options.get("messages"))
        call_kwargs = self._call_options(model, options)

        start = time.perf_counter()
        try:
            response = await model.chat_model.ainvoke(messages, **call_kwargs)
        except Exception as e:
            logger.error(f"Generation failed for model {model.model_id}: {e}")
            raise GenerationFailedError(
                f"Generation failed for model {model.model_id}: {e}",
                details={"model_id": model.model_id, "provider": model.provider.value}
            ) from e

        return GenerationResult(
            text=_content_text(response.content),
            usage=_usage(response),
            finish_reason=_finish_reason(response),
            model_id=model.model_id,
            provider=model.provider.value,
            processing_time=time.perf_counter() - start,
        )

    def _call_options(self, model: RegisteredModel, options: Dict[str, Any]) -> Dict[str, Any]:
        call_kwargs: Dict[str, Any] = {}
        if PROVIDERS[model.provider].forwards_options:
            call_kwargs["temperature"] = options.get("temperature", self.settings.model_temperature)
            call_kwargs["max_tokens"] = options.get("max_tokens", self.settings.max_tokens)
        if options.get("stop"):
            call_kwargs["stop"] = options["stop"]
        return call_kwargs

    @staticmethod
    def _to_langchain_messages(prompt: str, messages: Optional[List[Dict[str, str]]]) -> List[BaseMessage]:
        if not messages:
            return [HumanMessage(content=prompt)]

        lc_messages: List[BaseMessage] = []
        for msg in messages:
            if msg["role"] == "user":
                lc_messages.append(HumanMessage(content=msg["content"]))
            elif msg["role"] == "assistant":
                lc_messages.append(AIMessage(content=msg["content"]))
            elif msg["role"] == "system":
                lc_messages.append(SystemMessage(content=msg["content"]))
        return lc_messages

    def health(self) -> Dict[str, Any]:
        models = list(self.models.values())
        return {
            "status": "healthy" if models else "degraded",
            "models": {
                "total": len(models),
                "local": sum(1 for m in models if m.kind == "local"),
                "api": sum(1 for m in models if m.kind == "api"),
            },
            "providers": {
                "available": [kind.value for kind in ProviderKind],
                "active": sorted({m.provider.value for m in models}),
            },
        }

    async def close(self):
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


def _usage(response: AIMessage) -> Usage:
    usage = getattr(response, "usage_metadata", None) or {}
    return Usage(
        prompt_tokens=usage.get("input_tokens", 0),
        completion_tokens=usage.get("output_tokens", 0),
        total_tokens=usage.get("total_tokens", 0),
    )


def _finish_reason(response: AIMessage) -> Optional[str]:
    metadata = getattr(response, "response_metadata", None) or {}
    return metadata.get("finish_reason") or metadata.get("stop_reason")
