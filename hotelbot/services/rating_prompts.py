from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

RatingCallback = Callable[[str, str, int], Awaitable[None]]


class RatingPromptScheduler:
    """One pending rating prompt per (tenant, guest).

    Scheduling again for the same guest replaces the pending prompt. The
    callback receives the order id the prompt was scheduled for and is
    expected to check it against the live conversation before sending.
    """

    def __init__(self, callback: RatingCallback, *, delay_seconds: float = 10.0) -> None:
        self._callback = callback
        self.delay_seconds = delay_seconds
        self._tasks: dict[tuple[str, str], tuple[int, asyncio.Task]] = {}

    def schedule(self, tenant_id: str, guest_id: str, order_id: int) -> None:
        key = (tenant_id, guest_id)
        self.cancel(tenant_id, guest_id)
        task = asyncio.create_task(self._run(key, order_id), name=f"rating-prompt:{tenant_id}:{guest_id}")
        self._tasks[key] = (order_id, task)

    def cancel(self, tenant_id: str, guest_id: str) -> bool:
        entry = self._tasks.pop((tenant_id, guest_id), None)
        if entry is None:
            return False
        _, task = entry
        if task is asyncio.current_task():
            return False
        task.cancel()
        return True

    def cancel_tenant(self, tenant_id: str) -> int:
        keys = [key for key in self._tasks if key[0] == tenant_id]
        for key in keys:
            self.cancel(*key)
        return len(keys)

    def pending_order(self, tenant_id: str, guest_id: str) -> int | None:
        entry = self._tasks.get((tenant_id, guest_id))
        return entry[0] if entry else None

    async def shutdown(self) -> None:
        tasks = [task for _, task in self._tasks.values()]
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, key: tuple[str, str], order_id: int) -> None:
        tenant_id, guest_id = key
        try:
            await asyncio.sleep(self.delay_seconds)
            entry = self._tasks.get(key)
            if entry is not None and entry[1] is asyncio.current_task():
                self._tasks.pop(key, None)
            await self._callback(tenant_id, guest_id, order_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "rating prompt failed",
                extra={"tenant_id": tenant_id, "guest_id": guest_id, "order_id": order_id},
            )
