import asyncio
import logging
import random
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from festival.common.config_manager import ConfigManager
from festival.common.data_manager import DataManager
from festival.market.accounts import AccountBook
from festival.market.broadcast import Broadcaster
from festival.market.ledger import AccountLedger
from festival.market.models import MarketState, TradeResult
from festival.market.persistence import SnapshotWriter
from festival.market.registry import MarketRegistry
from festival.market.render import MarketRenderer

logger = logging.getLogger("festival")


def load_state(data_manager: DataManager) -> MarketState:
    """Read the saved market, falling back to the built-in default"""
    raw = data_manager.load_snapshot()
    if raw is None:
        return MarketState.default()
    try:
        return MarketState.model_validate(raw)
    except ValidationError as e:
        logger.warning("saved market is invalid, starting fresh: %s", e)
        return MarketState.default()


class FestivalMarket:
    """
    Virtual stock festival

    Owns the one shared ``MarketState`` and wires the registry, ledger,
    drift clock, snapshot writer and broadcaster around it. Transports call
    the command methods below; admin commands take the transport's
    ``authorized`` verdict and do nothing when it is false.

    Usage:
        market = FestivalMarket(ConfigManager.from_env())
        await market.start()
        market.register("alice")
        market.admin_give_cash(True, "alice", 1000)
        market.buy("alice", "FEST", 5)
        await market.stop()
    """

    def __init__(self, config: Optional[ConfigManager] = None,
                 data_manager: Optional[DataManager] = None,
                 broadcaster: Optional[Broadcaster] = None,
                 rng: Optional[random.Random] = None):
        self.config = config or ConfigManager()
        self.data_manager = data_manager or DataManager(self.config.data_dir, self.config.state_file)
        self.broadcaster = broadcaster or Broadcaster()
        self.renderer = MarketRenderer()

        self.state = load_state(self.data_manager)
        self.writer = SnapshotWriter(self.data_manager, self.snapshot,
                                     self.config.save_debounce_ms, self.config.save_max_wait_ms)
        self.accounts = AccountBook(self.state, self.config)
        self.registry = MarketRegistry(
            self.state, self.accounts, self.config,
            broadcaster=self.broadcaster,
            request_save=self.writer.request,
            rng=rng,
        )
        self.ledger = AccountLedger(self.registry, self.accounts)
        logger.info("market loaded: %d stocks, %d accounts", len(self.state.stocks), len(self.accounts))

    # ========== lifecycle ==========
    async def start(self):
        """Start every drift task; must be called from the running loop"""
        self.registry.start_clock()

    async def stop(self):
        self.registry.stop_clock()
        await self.writer.aflush()

    def snapshot(self) -> Dict[str, Any]:
        return self.state.model_dump()

    def health(self) -> Dict[str, bool]:
        return {"ok": True}

    def check_admin_key(self, key: Any) -> bool:
        return self.config.check_admin_key(key)

    # ========== public commands ==========
    def register(self, nickname: Any) -> Optional[Dict[str, Any]]:
        """Create or resume an account; returns the initial view for the viewer"""
        nick = self.accounts.ensure(nickname)
        if not nick:
            return None
        self.writer.request()
        stocks = self.registry.snapshot_stocks()
        self.broadcaster.price_all(stocks)
        return {
            "nickname": nick,
            "stocks": stocks,
            "config": self.state.config.model_dump(),
            "user": self.accounts.public_view(nick).model_dump(),
        }

    def buy(self, nickname: Any, ticker: Any, qty: Any) -> TradeResult:
        return self._trade("buy", nickname, ticker, qty)

    def sell(self, nickname: Any, ticker: Any, qty: Any) -> TradeResult:
        return self._trade("sell", nickname, ticker, qty)

    def _trade(self, side: str, nickname: Any, ticker: Any, qty: Any) -> TradeResult:
        res = self.ledger.trade(side, nickname, ticker, qty)
        if res.ok:
            self.broadcaster.user_update(self.accounts.normalize(nickname), res.user.model_dump())
        return res

    # ========== admin commands ==========
    def admin_set_price(self, authorized: bool, ticker: Any, price: Any):
        if not authorized:
            return
        self.registry.set_price(ticker, price)
        self._admin_stocks()

    def admin_set_volatility(self, authorized: bool, ticker: Any, volatility: Any):
        if not authorized:
            return
        self.registry.set_volatility(ticker, volatility)
        self._admin_stocks()

    def admin_toggle_pause(self, authorized: bool, ticker: Any) -> Optional[bool]:
        if not authorized:
            return None
        paused = self.registry.toggle_pause(ticker)
        if paused is not None:
            self._admin_stocks()
        return paused

    def admin_create_stock(self, authorized: bool, ticker: Any, name: Optional[str] = None,
                           price: Any = None, volatility: Any = None) -> Dict[str, bool]:
        if not authorized:
            return {"ok": False}
        ok = self.registry.create_stock(ticker, name, price, volatility)
        if ok:
            self._admin_stocks()
        return {"ok": ok}

    def admin_reset_all(self, authorized: bool):
        """Destructive: restores base prices and discards every account"""
        if not authorized:
            return
        self.registry.reset_all()
        self._admin_stocks()

    def admin_give_cash(self, authorized: bool, nickname: Any, amount: Any) -> Optional[str]:
        if not authorized:
            return None
        return self.ledger.give_cash(nickname, amount)

    def _admin_stocks(self):
        self.broadcaster.admin_stocks(self.registry.snapshot_stocks())

    # ========== rendering ==========
    def render_board(self) -> str:
        return self.renderer.render_board(self.registry.snapshot_stocks())

    def render_account(self, nickname: Any) -> Optional[str]:
        nick = self.accounts.normalize(nickname)
        view = self.accounts.public_view(nick)
        if view is None:
            return None
        prices = {t: s.price for t, s in self.state.stocks.items()}
        return self.renderer.render_account(nick, view.model_dump(), prices)


async def run(config: ConfigManager, until: Optional[Callable[[], bool]] = None):
    market = FestivalMarket(config)
    await market.start()
    logger.info("Virtual Stock Festival running (admin key is set; change ADMIN_KEY)")
    try:
        while until is None or not until():
            await asyncio.sleep(1)
    finally:
        await market.stop()


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(run(ConfigManager.from_env()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
