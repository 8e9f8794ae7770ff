"""
Broadcast gateway - fans market events out to connected viewers

Events:
    price:all     {"stocks": {...}}             every viewer
    price:update  {"ticker": str, "price": float}
    user:update   {"nickname": str, "user": {...}} listeners of that nickname
    stocks        {...}                         admin listeners only
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

Listener = Callable[[str, Dict[str, Any]], None]

PRICE_ALL = "price:all"
PRICE_UPDATE = "price:update"
USER_UPDATE = "user:update"
ADMIN_STOCKS = "stocks"


class Broadcaster:
    def __init__(self):
        # (listener, admin, nickname)
        self._listeners: List[Tuple[Listener, bool, Optional[str]]] = []

    def subscribe(self, listener: Listener, admin: bool = False, nickname: Optional[str] = None):
        """
        Register a viewer

        Args:
            listener: called as ``listener(event, payload)``
            admin: receives admin-only events as well
            nickname: receives ``user:update`` for this account only
        """
        self._listeners.append((listener, admin, nickname))

    def unsubscribe(self, listener: Listener):
        self._listeners = [entry for entry in self._listeners if entry[0] is not listener]

    def price_all(self, stocks: Dict[str, Any]):
        self._emit(PRICE_ALL, {"stocks": stocks})

    def price_update(self, ticker: str, price: float):
        self._emit(PRICE_UPDATE, {"ticker": ticker, "price": price})

    def user_update(self, nickname: str, user: Dict[str, Any]):
        self._emit(USER_UPDATE, {"nickname": nickname, "user": user}, nickname=nickname)

    def admin_stocks(self, stocks: Dict[str, Any]):
        self._emit(ADMIN_STOCKS, stocks, admin_only=True)

    def _emit(self, event: str, payload: Dict[str, Any], admin_only: bool = False,
              nickname: Optional[str] = None):
        for listener, admin, nick in list(self._listeners):
            if admin_only and not admin:
                continue
            if nickname is not None and nick != nickname:
                continue
            try:
                listener(event, payload)
            except Exception:
                logger.exception("listener failed on %s", event)
