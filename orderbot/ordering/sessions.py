# orderbot/ordering/sessions.py
from __future__ import annotations

import asyncio
import itertools
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import AsyncIterator, Callable, Dict, List, Optional

from .cart import CartLine
from .menu import MenuItem
from .states import State

# process-wide, so an evicted and recreated session never reuses an epoch
_epochs = itertools.count(1)


@dataclass
class Session:
    identity: str
    state: Optional[State] = None
    cart: List[CartLine] = field(default_factory=list)
    customer_name: Optional[str] = None
    known_customer: bool = False
    address: Optional[str] = None
    payment_method: Optional[str] = None
    cash_tendered: Optional[Decimal] = None
    change: Optional[Decimal] = None
    special_instructions: Optional[str] = None
    order_code: Optional[str] = None
    pending_selection: Optional[MenuItem] = None
    modify_index: Optional[int] = None
    menu_listing: List[MenuItem] = field(default_factory=list)
    menu_text: str = ""
    drinks: List[MenuItem] = field(default_factory=list)
    wallet_number: Optional[str] = None
    verification_id: Optional[str] = None
    nequi_attempts: int = 0
    denial_count: int = 0
    # changes on every reset; responses captured under an older epoch are stale
    epoch: int = field(default_factory=lambda: next(_epochs))

    @property
    def active(self) -> bool:
        return self.state is not None

    def clear(self) -> None:
        self.__dict__.update(Session(identity=self.identity).__dict__)


ResetListener = Callable[[str], None]


class SessionStore:
    """
    Process-wide identity -> Session map.

    Concurrency contract: callers mutate a session only while holding its
    per-identity lock (``locked``). Distinct identities use distinct locks, and
    creation of a session/lock is guarded so two racing first messages from
    the same identity share one session.

    A session that is inactive when its last lock holder leaves is evicted
    together with its lock.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}
        self._guard = threading.Lock()
        self._reset_listeners: List[ResetListener] = []

    def add_reset_listener(self, fn: ResetListener) -> None:
        self._reset_listeners.append(fn)

    def get(self, identity: str) -> Optional[Session]:
        return self._sessions.get(identity)

    def get_or_create(self, identity: str) -> Session:
        with self._guard:
            s = self._sessions.get(identity)
            if s is None:
                s = Session(identity=identity)
                self._sessions[identity] = s
            return s

    def _acquire_ref(self, identity: str) -> asyncio.Lock:
        with self._guard:
            lock = self._locks.get(identity)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[identity] = lock
            self._holders[identity] = self._holders.get(identity, 0) + 1
            return lock

    def _release_ref(self, identity: str) -> None:
        with self._guard:
            left = self._holders.get(identity, 1) - 1
            if left > 0:
                self._holders[identity] = left
                return
            self._holders.pop(identity, None)
            s = self._sessions.get(identity)
            if s is None or not s.active:
                self._sessions.pop(identity, None)
                self._locks.pop(identity, None)

    @asynccontextmanager
    async def locked(self, identity: str) -> AsyncIterator[Session]:
        lock = self._acquire_ref(identity)
        try:
            async with lock:
                yield self.get_or_create(identity)
        finally:
            self._release_ref(identity)

    def set_state(self, identity: str, state: Optional[State]) -> None:
        self.get_or_create(identity).state = state

    def reset(self, identity: str) -> None:
        s = self._sessions.get(identity)
        if s is not None:
            s.clear()
        for fn in self._reset_listeners:
            fn(identity)

    def active_identities(self) -> List[str]:
        return [k for k, s in self._sessions.items() if s.active]
