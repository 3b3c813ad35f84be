"""Agent runtime: metrics, timing, timeouts and the opt-in retry helper."""
import asyncio
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar, Union

from pydantic import ValidationError

from quonx.config import Settings
from quonx.errors import (
    AgentTimeoutError,
    GenerationFailedError,
    InvalidRequestError,
    QuonxError,
)
from quonx.models.schemas import AgentMetrics, AgentRequest, GenerationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    description: str = "operation"
) -> T:
    """
    Run an async operation with bounded exponential backoff.

    Args:
        operation: Zero-argument coroutine factory
        attempts: Total attempts, at least one
        base_delay: Delay before the second attempt; doubles after each failure
        description: Label used in log messages

    Returns:
        The operation's result

    Raises:
        The last exception once attempts are exhausted
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as e:
            if attempt == attempts - 1:
                raise
            logger.warning(f"{description} failed, retrying ({attempt + 1}/{attempts}): {e}")
            await asyncio.sleep(base_delay * (2 ** attempt))


class AgentRuntime:
    """Shared execution services injected into each agent."""

    def __init__(self, agent_type: str, model_manager: Any, settings: Settings):
        """
        Initialize the runtime.

        Args:
            agent_type: chat, code or reasoning
            model_manager: Model access layer with an async generate()
            settings: Application settings
        """
        self.agent_type = agent_type
        self.model_manager = model_manager
        self.settings = settings
        self.timeout = settings.agent_timeout_seconds
        self._metrics = AgentMetrics()
        self._lock = threading.Lock()
        self._started = time.monotonic()

    def validate(self, request: Union[AgentRequest, Mapping[str, Any]], request_id: str) -> AgentRequest:
        """Coerce a mapping into an AgentRequest, failing fast on bad input."""
        if isinstance(request, AgentRequest):
            return request
        if not isinstance(request, Mapping):
            raise InvalidRequestError(
                "Request must be an object",
                request_id=request_id,
                agent=self.agent_type
            )
        try:
            return AgentRequest.model_validate(dict(request))
        except ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise InvalidRequestError(
                f"Invalid request: {errors}",
                request_id=request_id,
                agent=self.agent_type
            )

    async def execute(self, request_id: str, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run one agent invocation under the timeout, recording metrics once.

        Args:
            request_id: Correlation id
            operation: Coroutine factory doing the agent's work

        Returns:
            The operation's result
        """
        start = time.perf_counter()
        success = False
        try:
            result = await asyncio.wait_for(operation(), timeout=self.timeout)
            success = True
            return result
        except asyncio.TimeoutError:
            logger.error(f"{self.agent_type} agent timed out after {self.timeout}s (request_id={request_id})")
            raise AgentTimeoutError(
                f"{self.agent_type} agent timed out after {self.timeout}s",
                request_id=request_id,
                agent=self.agent_type
            )
        except QuonxError as e:
            e.request_id = e.request_id or request_id
            e.agent = e.agent or self.agent_type
            logger.error(f"{self.agent_type} agent failed (request_id={request_id}): {e.message}")
            raise
        except Exception as e:
            logger.error(f"{self.agent_type} agent failed (request_id={request_id}): {e}", exc_info=True)
            raise GenerationFailedError(
                f"{self.agent_type} agent failed: {e}",
                request_id=request_id,
                agent=self.agent_type
            ) from e
        finally:
            self.record(time.perf_counter() - start, success)

    def record_failure(self):
        """Count a request rejected before execution."""
        self.record(0.0, False)

    async def generate(
        self,
        model_id: str,
        prompt: str,
        options: Optional[Dict[str, Any]] = None
    ) -> GenerationResult:
        """Call the model access layer, retrying only when configured to."""
        options = {**(options or {}), "role": self.agent_type}

        async def call() -> GenerationResult:
            return await self.model_manager.generate(model_id, prompt, options)

        if not self.settings.auto_retry_generation:
            return await call()

        return await retry_async(
            call,
            attempts=self.settings.retry_attempts,
            base_delay=self.settings.retry_base_delay_seconds,
            description=f"{self.agent_type} generation"
        )

    def record(self, elapsed: float, success: bool):
        with self._lock:
            metrics = self._metrics
            metrics.total_requests += 1
            metrics.total_response_time += elapsed
            metrics.average_response_time = metrics.total_response_time / metrics.total_requests
            if success:
                metrics.successful_requests += 1
            else:
                metrics.failed_requests += 1

    def metrics(self) -> AgentMetrics:
        """Snapshot of this agent's counters."""
        with self._lock:
            snapshot = self._metrics.model_copy()
        snapshot.uptime = time.monotonic() - self._started
        if snapshot.total_requests:
            snapshot.success_rate = snapshot.successful_requests / snapshot.total_requests
        return snapshot
