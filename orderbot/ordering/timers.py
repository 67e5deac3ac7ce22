# orderbot/ordering/timers.py
from __future__ import annotations

import asyncio
import itertools
from typing import Awaitable, Callable, Dict

from ..log import logger

TimerCallback = Callable[[str, int], Awaitable[None]]
ReminderCallback = Callable[[], Awaitable[None]]

WARNING = "warning"
TERMINATE = "terminate"


class InactivitySupervisor:
    """
    Per-identity inactivity timers.

    ``arm`` starts a warning timer (T1) and a terminate timer (T2 > T1) under a
    fresh token; ``cancel`` drops both. Callbacks receive the token they were
    armed with and must check ``is_current`` under the session lock before
    acting, so a message racing a firing timer always wins.

    One-shot reminders (``schedule``) live beside the inactivity timers and are
    only dropped by ``cancel_all`` (session reset).
    """

    def __init__(
        self,
        warning_after: float,
        terminate_after: float,
        on_warning: TimerCallback,
        on_terminate: TimerCallback,
    ) -> None:
        if terminate_after <= warning_after:
            raise ValueError("terminate_after must be greater than warning_after")
        self.warning_after = warning_after
        self.terminate_after = terminate_after
        self._on_warning = on_warning
        self._on_terminate = on_terminate
        self._counter = itertools.count(1)
        self._tokens: Dict[str, int] = {}
        self._timers: Dict[str, Dict[str, asyncio.Task]] = {}
        self._reminders: Dict[str, Dict[str, asyncio.Task]] = {}

    # ---- inactivity timers ----

    def arm(self, identity: str) -> int:
        self.cancel(identity)
        token = next(self._counter)
        self._tokens[identity] = token
        self._timers[identity] = {
            WARNING: asyncio.create_task(
                self._fire(self._timers, identity, WARNING, self.warning_after, token, self._on_warning)
            ),
            TERMINATE: asyncio.create_task(
                self._fire(self._timers, identity, TERMINATE, self.terminate_after, token, self._on_terminate)
            ),
        }
        return token

    def cancel(self, identity: str) -> None:
        self._tokens.pop(identity, None)
        for task in self._timers.pop(identity, {}).values():
            task.cancel()

    def is_current(self, identity: str, token: int) -> bool:
        return self._tokens.get(identity) == token

    def pending(self, identity: str) -> int:
        return sum(1 for t in self._timers.get(identity, {}).values() if not t.done())

    # ---- one-shot reminders ----

    def schedule(self, identity: str, name: str, delay: float, callback: ReminderCallback) -> None:
        slots = self._reminders.setdefault(identity, {})
        old = slots.pop(name, None)
        if old is not None:
            old.cancel()

        async def _run(_identity: str, _token: int) -> None:
            await callback()

        slots[name] = asyncio.create_task(self._fire(self._reminders, identity, name, delay, 0, _run))

    def cancel_reminders(self, identity: str) -> None:
        for task in self._reminders.pop(identity, {}).values():
            task.cancel()

    def cancel_all(self, identity: str) -> None:
        self.cancel(identity)
        self.cancel_reminders(identity)

    async def _fire(
        self,
        registry: Dict[str, Dict[str, asyncio.Task]],
        identity: str,
        name: str,
        delay: float,
        token: int,
        callback: TimerCallback,
    ) -> None:
        await asyncio.sleep(delay)

        # detach: a cancel() from here on must not interrupt the callback midway
        slots = registry.get(identity)
        if slots is not None and slots.get(name) is asyncio.current_task():
            del slots[name]

        if registry is self._timers and not self.is_current(identity, token):
            return
        try:
            await callback(identity, token)
        except Exception:
            logger.exception("Timer %s for %s failed", name, identity)
