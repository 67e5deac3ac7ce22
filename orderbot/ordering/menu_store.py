# orderbot/ordering/menu_store.py
from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi.concurrency import run_in_threadpool

from ..errors import CatalogError
from ..log import logger
from .menu import Menu, parse_menu

MenuLoader = Callable[[], Dict[str, Any]]


def json_file_loader(path: str | Path) -> MenuLoader:
    menu_path = Path(path)

    def _load() -> Dict[str, Any]:
        if not menu_path.exists():
            raise FileNotFoundError(f"Menu file not found: {menu_path}")
        return json.loads(menu_path.read_text(encoding="utf-8"))

    return _load


class CatalogService:
    """
    Menu catalog with a time-to-live cache.

    On a failed refresh the last good menu keeps being served; with nothing
    cached the failure propagates as CatalogError.
    """

    def __init__(
        self,
        loader: MenuLoader,
        ttl_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: Optional[Menu] = None
        self._fetched_at = 0.0

    def invalidate(self) -> None:
        self._fetched_at = 0.0

    async def get_menu(self) -> Menu:
        now = self._clock()
        if self._cache is not None and (now - self._fetched_at) < self._ttl:
            return self._cache

        try:
            raw = await run_in_threadpool(self._loader)
            menu = parse_menu(raw)
        except Exception as e:
            if self._cache is not None:
                logger.warning("Menu refresh failed (%s); serving stale cache.", e)
                return self._cache
            logger.error("Menu fetch failed with no cache: %s", e)
            raise CatalogError("Menu catalog unavailable") from e

        self._cache = menu
        self._fetched_at = now
        return menu
