"""In-flight request deduplication."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Call = Callable[[], Awaitable[Any]]
SuccessHook = Callable[[Any], Any]
ErrorHook = Callable[[Exception], Any]
CompleteHook = Callable[[], Any]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class RequestCache:
    """Runs async calls so that at most one call per key is in flight.

    A caller arriving while a call with the same key is pending receives the
    pending result instead of issuing a second call. The entry is dropped as
    soon as the call settles, so the next caller starts a fresh one. Calls
    without a key are never deduplicated.

    Hooks belong to the call that actually runs:

    * ``on_success(value)`` - its return value becomes the shared result.
    * ``on_error(exc)`` - marks the failure as handled; the result is ``None``.
      It also receives errors raised by ``on_success``. Without it the
      exception reaches every waiting caller.
    * ``on_complete()`` - runs after either outcome.
    """

    def __init__(self, on_pending_change: Callable[[int], None] | None = None) -> None:
        self._inflight: dict[str, asyncio.Task[Any]] = {}
        self._pending = 0
        self._on_pending_change = on_pending_change

    @property
    def pending_count(self) -> int:
        return self._pending

    def is_pending(self, key: str) -> bool:
        return key in self._inflight

    async def run(
        self,
        key: str | None,
        call: Call,
        *,
        on_success: SuccessHook | None = None,
        on_error: ErrorHook | None = None,
        on_complete: CompleteHook | None = None,
    ) -> Any:
        if key is not None:
            task = self._inflight.get(key)
            if task is not None:
                logger.debug("Joining in-flight request %s", key)
                return await asyncio.shield(task)

        task = asyncio.ensure_future(
            self._settle(call, on_success, on_error, on_complete),
        )
        self._set_pending(self._pending + 1)
        task.add_done_callback(lambda t: self._release(key, t))
        if key is not None:
            self._inflight[key] = task
        return await asyncio.shield(task)

    def _release(self, key: str | None, task: asyncio.Task[Any]) -> None:
        if key is not None and self._inflight.get(key) is task:
            del self._inflight[key]
        self._set_pending(self._pending - 1)

    def _set_pending(self, value: int) -> None:
        self._pending = value
        if self._on_pending_change is not None:
            self._on_pending_change(value)

    @staticmethod
    async def _settle(
        call: Call,
        on_success: SuccessHook | None,
        on_error: ErrorHook | None,
        on_complete: CompleteHook | None,
    ) -> Any:
        try:
            value = await call()
            if on_success is not None:
                value = await _resolve(on_success(value))
            return value
        except Exception as exc:
            if on_error is None:
                raise
            await _resolve(on_error(exc))
            return None
        finally:
            if on_complete is not None:
                await _resolve(on_complete())
