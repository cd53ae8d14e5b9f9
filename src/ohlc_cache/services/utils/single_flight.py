"""Per-key single-flight: concurrent callers for one key share one in-flight task."""
import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

Covers = Callable[[Any, Any], bool]


@dataclass
class _Call:
    task: asyncio.Task
    scope: Any
    refs: int = 0


class SingleFlight:
    """Collapse concurrent calls per key into one shared task.

    A caller whose ``scope`` is covered by the in-flight call's scope awaits
    that call's result. Any other caller for the same key waits for it to
    finish and then starts its own call, so calls for one key never overlap.
    Different keys never block each other.

    Callers await through ``asyncio.shield``: cancelling or timing out one
    caller never cancels the shared task.
    """

    def __init__(self) -> None:
        self._calls: dict[Hashable, _Call] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._calls

    async def do(
        self,
        key: Hashable,
        fn: Callable[[], Awaitable[Any]],
        *,
        scope: Any = None,
        covers: Covers | None = None,
    ) -> Any:
        """Run ``fn()`` for ``key``, or join an in-flight call that covers ``scope``.

        Args:
            key: Serialization key (e.g. the normalized symbol).
            fn: Zero-argument coroutine function doing the work.
            scope: What this caller needs (e.g. a (from, to) range).
            covers: covers(in_flight_scope, scope) -> True if the in-flight
                result satisfies this caller. None means every call is shared.

        Returns:
            The result of the shared or own call; its exception propagates.
        """
        while True:
            call = self._calls.get(key)
            if call is None:
                return await self._lead(key, fn, scope)
            call.refs += 1
            try:
                if covers is None or covers(call.scope, scope):
                    logger.debug("Joining in-flight call for %s", key)
                    return await asyncio.shield(call.task)
                logger.debug("Waiting for in-flight call for %s before starting own", key)
                await asyncio.wait({call.task})
            finally:
                call.refs -= 1

    async def wait(self, key: Hashable) -> None:
        """Block until no call is in flight for ``key``."""
        while (call := self._calls.get(key)) is not None:
            await asyncio.wait({call.task})

    async def _lead(
        self, key: Hashable, fn: Callable[[], Awaitable[Any]], scope: Any
    ) -> Any:
        task = asyncio.ensure_future(fn())
        call = _Call(task=task, scope=scope, refs=1)
        self._calls[key] = call
        task.add_done_callback(functools.partial(self._finish, key, call))
        try:
            return await asyncio.shield(task)
        finally:
            call.refs -= 1

    def _finish(self, key: Hashable, call: _Call, task: asyncio.Task) -> None:
        if self._calls.get(key) is call:
            del self._calls[key]
        if task.cancelled() or call.refs > 0:
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("In-flight call for %s failed with no caller left: %r", key, exc)
