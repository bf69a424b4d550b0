from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

from epicflow.backends.base import (
    AgentBackend,
    BackendExecutionError,
    BackendInterruptedError,
    BackendTimeoutError,
    BackendUsageExceededError,
)

BackendEventHook = Callable[[dict[str, Any]], None]


@dataclass(slots=True)
class RetryPolicy:
    max_retries: int = 1
    backoff_seconds: float = 0.5
    timeout_seconds: float | None = None


class ResilientBackend(AgentBackend):
    """Wraps primary/fallback backends with optional timeout, retry, and failover.

    Output is buffered per attempt so a failed attempt never leaks partial
    chunks to the caller. Interruptions are re-raised immediately.
    """

    def __init__(
        self,
        primary_name: str,
        primary_backend: AgentBackend,
        fallback_name: str,
        fallback_backend: AgentBackend,
        retry_policy: RetryPolicy,
        event_hook: BackendEventHook | None = None,
    ) -> None:
        self.primary_name = primary_name
        self.primary_backend = primary_backend
        self.fallback_name = fallback_name
        self.fallback_backend = fallback_backend
        self.retry_policy = retry_policy
        self.event_hook = event_hook

    def _emit(self, event: dict[str, Any]) -> None:
        if self.event_hook:
            self.event_hook(event)

    async def _collect_chunks(
        self,
        backend: AgentBackend,
        *,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
        tools: list[str] | None,
    ) -> list[str]:
        async def _consume() -> list[str]:
            chunks: list[str] = []
            async for chunk in backend.execute(system_prompt, user_prompt, context, tools):
                chunks.append(chunk)
            return chunks

        timeout = self.retry_policy.timeout_seconds
        if not timeout:
            return await _consume()
        try:
            return await asyncio.wait_for(_consume(), timeout=timeout)
        except TimeoutError as exc:
            raise BackendTimeoutError(
                f"Backend request timed out after {timeout:.1f}s",
                retriable=True,
            ) from exc

    async def execute(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
        tools: list[str] | None = None,
    ) -> AsyncIterator[str]:
        attempts: list[tuple[str, AgentBackend]] = [(self.primary_name, self.primary_backend)]
        if self.fallback_name != self.primary_name:
            attempts.append((self.fallback_name, self.fallback_backend))

        errors: list[str] = []
        last_error: BackendExecutionError | None = None
        for backend_name, backend in attempts:
            for attempt in range(self.retry_policy.max_retries + 1):
                if attempt > 0:
                    delay = self.retry_policy.backoff_seconds * (2 ** (attempt - 1))
                    self._emit(
                        {
                            "event": "backend_retry",
                            "backend": backend_name,
                            "attempt": attempt,
                            "delay_seconds": delay,
                        }
                    )
                    await asyncio.sleep(delay)
                try:
                    chunks = await self._collect_chunks(
                        backend,
                        system_prompt=system_prompt,
                        user_prompt=user_prompt,
                        context=context,
                        tools=tools,
                    )
                except BackendInterruptedError:
                    raise
                except BackendExecutionError as exc:
                    last_error = exc
                    errors.append(f"{backend_name}[{attempt}]: {exc}")
                    self._emit(
                        {
                            "event": "backend_attempt_failed",
                            "backend": backend_name,
                            "attempt": attempt,
                            "error": str(exc),
                            "retriable": exc.retriable,
                        }
                    )
                    if not exc.retriable:
                        break
                    continue
                except Exception as exc:
                    last_error = None
                    errors.append(f"{backend_name}[{attempt}]: {exc}")
                    self._emit(
                        {
                            "event": "backend_attempt_failed",
                            "backend": backend_name,
                            "attempt": attempt,
                            "error": str(exc),
                            "retriable": True,
                        }
                    )
                    continue

                if backend_name != self.primary_name:
                    self._emit(
                        {
                            "event": "backend_fallback_success",
                            "backend": backend_name,
                            "attempt": attempt,
                        }
                    )
                for chunk in chunks:
                    yield chunk
                return

            if backend_name == self.primary_name and len(attempts) > 1:
                self._emit({"event": "backend_failover_start", "from": backend_name})

        summary = "; ".join(errors[-6:])
        if isinstance(last_error, BackendUsageExceededError):
            raise BackendUsageExceededError(
                f"All backends reported usage limits. {summary}",
                retriable=False,
            )
        raise BackendExecutionError(
            f"All backend attempts failed. {summary}",
            retriable=False,
        )
