"""
End-to-end tests through the command surface
"""
import asyncio
import json
import random

import pytest

from festival.common.config_manager import ConfigManager
from festival.common.data_manager import DataManager
from festival.market.broadcast import Broadcaster
from main import FestivalMarket, load_state


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, event, payload):
        self.events.append((event, payload))

    def names(self):
        return [e for e, _ in self.events]


@pytest.fixture
def public():
    return Recorder()


@pytest.fixture
def admin():
    return Recorder()


@pytest.fixture
def market(tmp_path, public, admin):
    broadcaster = Broadcaster()
    broadcaster.subscribe(public)
    broadcaster.subscribe(admin, admin=True)
    config = ConfigManager({"data_dir": str(tmp_path)})
    return FestivalMarket(config, broadcaster=broadcaster, rng=random.Random(3))


def test_default_market_when_no_snapshot(market):
    assert list(market.state.stocks) == ["FEST"]
    fest = market.state.stocks["FEST"]
    assert (fest.price, fest.volatility, fest.name) == (100, 1.0, "Festival")
    assert market.state.config.startingBalance == 0
    assert market.state.config.liquidity == 800
    assert market.state.config.baseTickMs == 2000


def test_register_returns_initial_view(market, public):
    view = market.register("  Alice ")
    assert view["nickname"] == "Alice"
    assert view["user"] == {"balance": 0.0, "holdings": {}, "history": []}
    assert "FEST" in view["stocks"]
    assert view["config"]["liquidity"] == 800
    assert public.names() == ["price:all"]


def test_register_requires_nickname(market):
    assert market.register("   ") is None
    assert len(market.accounts) == 0


def test_register_is_idempotent(market):
    market.register("Alice")
    market.admin_give_cash(True, "Alice", 10)
    market.register("Alice")
    assert market.accounts.get("Alice").balance == 10


def test_alice_buys(market, public):
    market.register("Alice")
    market.admin_give_cash(True, "Alice", 10000)
    alice = Recorder()
    market.broadcaster.subscribe(alice, nickname="Alice")

    res = market.buy("Alice", "FEST", 50)

    assert res.ok
    assert res.newPrice == 106.45
    assert res.user.balance == 5000.0
    assert ("price:update", {"ticker": "FEST", "price": 106.45}) in public.events
    assert alice.names() == ["price:update", "user:update"]
    assert alice.events[-1][1]["user"]["holdings"] == {"FEST": 50}
    # user updates only reach the trading account's listeners
    assert "user:update" not in public.names()


def test_failed_trade_sends_no_user_update(market):
    alice = Recorder()
    market.broadcaster.subscribe(alice, nickname="Alice")
    res = market.buy("Alice", "FEST", 1)
    assert not res.ok
    assert res.error == "insufficient balance"
    assert alice.events == []


def test_admin_commands_require_authorization(market, admin):
    market.admin_set_price(False, "FEST", 1)
    market.admin_set_volatility(False, "FEST", 5)
    assert market.admin_toggle_pause(False, "FEST") is None
    assert market.admin_create_stock(False, "NEW") == {"ok": False}
    assert market.admin_give_cash(False, "Alice", 100) is None
    market.admin_reset_all(False)

    fest = market.state.stocks["FEST"]
    assert (fest.price, fest.volatility, fest.paused) == (100, 1.0, False)
    assert "NEW" not in market.state.stocks
    assert len(market.accounts) == 0
    assert admin.events == []


def test_admin_edits_reach_admin_listeners_only(market, public, admin):
    market.admin_set_price(True, "FEST", 120)
    market.admin_toggle_pause(True, "FEST")
    assert admin.names().count("stocks") == 2
    assert "stocks" not in public.names()
    assert admin.events[-1][1]["FEST"]["paused"] is True


def test_create_stock_scenario(market):
    assert market.admin_create_stock(True, "AB!@3c", "Alpha", 50, 2) == {"ok": True}
    before = market.snapshot()
    assert market.admin_create_stock(True, "AB!@3c", "Again", 10, 1) == {"ok": False}
    assert market.snapshot() == before
    assert market.state.stocks["AB3C"].name == "Alpha"


def test_pause_blocks_trading_and_drift(market):
    market.admin_give_cash(True, "Alice", 1000)
    market.admin_toggle_pause(True, "FEST")
    assert market.buy("Alice", "FEST", 1).error == "trading paused for this ticker"
    for _ in range(10):
        market.registry.tick("FEST")
    assert market.state.stocks["FEST"].price == 100
    market.admin_toggle_pause(True, "FEST")
    assert market.buy("Alice", "FEST", 1).ok


def test_reset_all_scenario(market):
    market.admin_give_cash(True, "Bob", 1000)
    market.buy("Bob", "FEST", 3)
    market.admin_set_price(True, "FEST", 150)

    market.admin_reset_all(True)

    assert market.state.stocks["FEST"].price == 100
    assert market.state.stocks["FEST"].paused is False
    assert "Bob" not in market.accounts
    view = market.register("Bob")
    assert view["user"]["balance"] == market.state.config.startingBalance
    assert view["user"]["holdings"] == {}


def test_health_and_admin_key(market):
    assert market.health() == {"ok": True}
    assert market.check_admin_key("festival2025")
    assert not market.check_admin_key("guess")


def test_state_survives_restart(tmp_path):
    config = ConfigManager({"data_dir": str(tmp_path)})
    first = FestivalMarket(config)
    first.admin_give_cash(True, "Alice", 1000)
    first.buy("Alice", "FEST", 4)
    first.admin_create_stock(True, "ZED", "Zed", 5, 0.5)
    first.writer.flush()

    second = FestivalMarket(config)
    assert second.accounts.get("Alice").holdings == {"FEST": 4}
    assert second.accounts.get("Alice").history[0].qty == 4
    assert second.state.stocks["ZED"].volatility == 0.5
    assert second.state.stocks["FEST"].price == first.state.stocks["FEST"].price
    assert second.registry.clock.interval_of("ZED") == 4000


def test_invalid_snapshot_falls_back_to_default(tmp_path):
    dm = DataManager(base_path=tmp_path)
    dm.state_path.write_text(json.dumps({"stocks": {"BAD": {"price": "cheap"}}}), encoding="utf-8")
    state = load_state(dm)
    assert list(state.stocks) == ["FEST"]


def test_renders(market):
    market.admin_give_cash(True, "Alice", 1000)
    market.buy("Alice", "FEST", 2)
    assert "FEST" in market.render_board()
    assert "Alice" in market.render_account("Alice")
    assert market.render_account("Nobody") is None


def test_running_market_drifts_and_saves(tmp_path):
    async def scenario():
        config = ConfigManager({"data_dir": str(tmp_path), "min_interval_ms": 5, "save_debounce_ms": 20})
        market = FestivalMarket(config, rng=random.Random(5))
        market.state.config.baseTickMs = 10
        market.registry.restart_timer("FEST")
        await market.start()
        await asyncio.sleep(0.2)
        await market.stop()
        return market

    market = asyncio.run(scenario())
    assert market.writer.writes >= 1
    saved = DataManager(base_path=tmp_path).load_snapshot()
    assert saved["stocks"]["FEST"]["price"] == market.state.stocks["FEST"].price
    assert not market.registry.clock.is_running("FEST")


def test_run_starts_and_stops_cleanly(tmp_path):
    from main import run

    config = ConfigManager({"data_dir": str(tmp_path)})
    asyncio.run(run(config, until=lambda: True))
    assert DataManager(base_path=tmp_path).load_snapshot() is None
