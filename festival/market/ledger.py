"""
Account ledger - trade execution and cash grants

A trade is validated completely before anything is touched; on success the
account, the trade history and then the stock price are updated while the
stock's guard is held, so a drift tick can't interleave with it.
"""
import logging
import math
import time
from typing import Any, Callable, Optional

from . import pricing
from .accounts import AccountBook
from .broadcast import Broadcaster
from .models import TradeRecord, TradeResult
from .registry import MarketRegistry

logger = logging.getLogger(__name__)

NICKNAME_REQUIRED = "nickname required"
UNKNOWN_TICKER = "unknown ticker"
TRADING_PAUSED = "trading paused for this ticker"
BAD_QUANTITY = "quantity must be ≥ 1"
INSUFFICIENT_BALANCE = "insufficient balance"
INSUFFICIENT_HOLDINGS = "insufficient holdings"
ORDER_TOO_LARGE = "order too large"

SIDES = ("buy", "sell")


def _rejected(error: str, kind: str) -> TradeResult:
    return TradeResult(ok=False, error=error, errorKind=kind)


def _now_ms() -> int:
    return int(time.time() * 1000)


class AccountLedger:
    def __init__(self, registry: MarketRegistry, accounts: AccountBook,
                 broadcaster: Optional[Broadcaster] = None,
                 request_save: Optional[Callable[[], None]] = None,
                 clock: Callable[[], int] = _now_ms):
        self.registry = registry
        self.accounts = accounts
        self.broadcaster = broadcaster or registry.broadcaster
        self.request_save = request_save or registry.request_save
        self._now = clock

    @property
    def state(self):
        return self.registry.state

    def trade(self, side: str, nickname: Any, ticker: Any, qty: Any) -> TradeResult:
        """
        Execute a market buy or sell at the current price

        Args:
            side: "buy" or "sell"
            nickname: account nickname, created on first trade
            ticker: stock ticker
            qty: share count; floored to an integer

        Returns:
            TradeResult with the account's public view and the post-impact
            price, or the first validation failure
        """
        if side not in SIDES:
            raise ValueError(f"unknown side: {side!r}")

        nick = self.accounts.normalize(nickname)
        if not nick:
            return _rejected(NICKNAME_REQUIRED, "validation")
        t = self.registry.normalize(ticker)
        stock = self.state.stocks.get(t)
        if stock is None:
            return _rejected(UNKNOWN_TICKER, "validation")

        with self.registry.guard(t), self.accounts.lock:
            if stock.paused:
                return _rejected(TRADING_PAUSED, "state")
            n = pricing.parse_quantity(qty)
            if n <= 0:
                return _rejected(BAD_QUANTITY, "validation")

            nick = self.accounts.ensure(nick)
            account = self.accounts.get(nick)
            price = stock.price
            cost = pricing.round2(price * n)

            if side == "buy":
                if account.balance < cost:
                    return _rejected(INSUFFICIENT_BALANCE, "state")
            elif account.holdings.get(t, 0) < n:
                return _rejected(INSUFFICIENT_HOLDINGS, "state")

            # nothing is committed until the new price is known to be finite
            new_price = pricing.impact_price(
                price, side, n, stock.volatility, self.state.config.liquidity)
            if not math.isfinite(new_price):
                return _rejected(ORDER_TOO_LARGE, "state")

            if side == "buy":
                account.balance = pricing.round2(account.balance - cost)
                account.holdings[t] = account.holdings.get(t, 0) + n
            else:
                account.holdings[t] = account.holdings[t] - n
                account.balance = pricing.round2(account.balance + cost)

            account.history.append(TradeRecord(ts=self._now(), side=side, ticker=t, qty=n, price=price))
            overflow = len(account.history) - self.accounts.config.history_limit
            if overflow > 0:
                del account.history[:overflow]

            stock.price = new_price
            view = self.accounts.public_view(nick)

        self.request_save()
        self.broadcaster.price_update(t, new_price)
        return TradeResult(ok=True, user=view, newPrice=new_price)

    def buy(self, nickname: Any, ticker: Any, qty: Any) -> TradeResult:
        return self.trade("buy", nickname, ticker, qty)

    def sell(self, nickname: Any, ticker: Any, qty: Any) -> TradeResult:
        return self.trade("sell", nickname, ticker, qty)

    def give_cash(self, nickname: Any, amount: Any) -> Optional[str]:
        """
        Credit (or debit) an account, creating it if needed

        The balance never goes below zero. Returns the clean nickname, or
        None when the nickname is empty.
        """
        nick = self.accounts.ensure(nickname)
        if not nick:
            return None
        value = pricing.to_number(amount) or 0.0
        with self.accounts.lock:
            account = self.accounts.get(nick)
            account.balance = pricing.round2(max(0.0, account.balance + value))
        logger.info("granted %.2f to %s", value, nick)
        self.request_save()
        return nick
