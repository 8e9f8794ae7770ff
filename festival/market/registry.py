"""
Market registry - owns the stocks, their guards and their drift tasks

All reads and writes of a stock record go through here. Every mutation of a
single stock happens while holding that stock's guard, which trade execution
acquires as well.
"""
import logging
import random
import threading
from typing import Any, Callable, Dict, Optional

from ..common.config_manager import ConfigManager
from . import pricing
from .broadcast import Broadcaster
from .clock import MarketClock
from .accounts import AccountBook
from .models import MarketState, Stock

logger = logging.getLogger(__name__)


class MarketRegistry:
    def __init__(self, state: MarketState, accounts: AccountBook,
                 config: Optional[ConfigManager] = None,
                 broadcaster: Optional[Broadcaster] = None,
                 request_save: Optional[Callable[[], None]] = None,
                 rng: Optional[random.Random] = None):
        self.state = state
        self.accounts = accounts
        self.config = config or ConfigManager()
        self.broadcaster = broadcaster or Broadcaster()
        self.request_save = request_save or (lambda: None)
        self.rng = rng or random.Random()
        self.clock = MarketClock(self.tick)
        self._guards: Dict[str, threading.RLock] = {}

        for ticker, stock in self.state.stocks.items():
            self._sanitize(stock)
            self.restart_timer(ticker)

    # ========== lookup ==========
    def normalize(self, ticker: Any) -> str:
        return pricing.normalize_ticker(ticker, self.config.ticker_max_length)

    def get_stock(self, ticker: Any) -> Optional[Stock]:
        return self.state.stocks.get(self.normalize(ticker))

    def guard(self, ticker: str) -> threading.RLock:
        return self._guards.setdefault(ticker, threading.RLock())

    def snapshot_stocks(self) -> Dict[str, Dict[str, Any]]:
        return {t: s.model_dump() for t, s in self.state.stocks.items()}

    # ========== drift ==========
    def restart_timer(self, ticker: str):
        stock = self.state.stocks.get(ticker)
        if stock is None:
            return
        interval = pricing.drift_interval_ms(
            self.state.config.baseTickMs, stock.volatility, self.config.min_interval_ms)
        self.clock.restart(ticker, interval)

    def start_clock(self):
        self.clock.start()

    def stop_clock(self):
        self.clock.stop_all()

    def tick(self, ticker: str):
        """One drift step; paused or unknown stocks are left alone"""
        stock = self.state.stocks.get(ticker)
        if stock is None:
            return
        with self.guard(ticker):
            if stock.paused:
                return
            stock.price = pricing.drift_price(
                stock.price, stock.basePrice, stock.volatility, self.rng.random(),
                noise_scale=self.config.noise_scale,
                mean_reversion=self.config.mean_reversion,
            )
            price = stock.price
        self.broadcaster.price_update(ticker, price)
        self.request_save()

    # ========== admin mutations ==========
    def create_stock(self, ticker: Any, name: Optional[str] = None, price: Any = None,
                     volatility: Any = None) -> bool:
        t = self.normalize(ticker)
        if not t or t in self.state.stocks:
            return False
        p = pricing.to_number(price)
        if not p:
            p = pricing.DEFAULT_PRICE
        v = pricing.to_number(volatility)
        if v is None:
            v = pricing.DEFAULT_VOLATILITY
        initial = pricing.floor_price(p)
        self.state.stocks[t] = Stock(
            name=name or t,
            price=initial,
            basePrice=initial,
            volatility=pricing.clamp_volatility(v),
            paused=False,
        )
        self.restart_timer(t)
        logger.info("created stock %s at %.2f", t, initial)
        self._changed()
        return True

    def set_price(self, ticker: Any, price: Any):
        t = self.normalize(ticker)
        stock = self.state.stocks.get(t)
        p = pricing.to_number(price)
        if stock is None or p is None:
            return
        with self.guard(t):
            stock.price = pricing.floor_price(p)
        self._changed()

    def set_volatility(self, ticker: Any, volatility: Any):
        t = self.normalize(ticker)
        stock = self.state.stocks.get(t)
        v = pricing.to_number(volatility)
        if stock is None or v is None:
            return
        with self.guard(t):
            stock.volatility = pricing.clamp_volatility(v)
            self.restart_timer(t)
        self._changed()

    def toggle_pause(self, ticker: Any) -> Optional[bool]:
        """Flip the pause flag; returns the new flag, None for unknown tickers"""
        t = self.normalize(ticker)
        stock = self.state.stocks.get(t)
        if stock is None:
            return None
        with self.guard(t):
            stock.paused = not stock.paused
            paused = stock.paused
        self.request_save()
        return paused

    def reset_all(self):
        """Prices back to base, pauses cleared, timers restarted, accounts wiped"""
        tickers = sorted(self.state.stocks)
        guards = [self.guard(t) for t in tickers]
        for g in guards:
            g.acquire()
        try:
            for t in tickers:
                stock = self.state.stocks[t]
                stock.price = stock.basePrice
                stock.paused = False
                self.restart_timer(t)
            if self.config.reset_wipes_accounts:
                self.accounts.wipe()
        finally:
            for g in reversed(guards):
                g.release()
        logger.warning("market reset: %d stocks restored to base price", len(tickers))
        self._changed()

    def _changed(self):
        self.request_save()
        self.broadcaster.price_all(self.snapshot_stocks())

    def _sanitize(self, stock: Stock):
        stock.volatility = pricing.clamp_volatility(stock.volatility)
        stock.price = pricing.floor_price(stock.price)
        stock.basePrice = pricing.floor_price(stock.basePrice)
