from festival.market.render import MarketRenderer


def test_board_lists_stocks():
    r = MarketRenderer()
    html = r.render_board({
        "FEST": {"name": "Festival", "price": 106.45, "basePrice": 100.0, "volatility": 1.0, "paused": False},
        "ZZZ": {"name": "Sleepy <Co>", "price": 9.0, "basePrice": 10.0, "volatility": 0.5, "paused": True},
    })
    assert "FEST" in html
    assert "106.45" in html
    assert "+6.45%" in html
    assert "-10.00%" in html
    assert "PAUSED" in html
    assert "Sleepy &lt;Co&gt;" in html
    assert html.index("FEST") < html.index("ZZZ")


def test_empty_board():
    assert "No stocks listed" in MarketRenderer().render_board({})


def test_account_summary():
    user = {
        "balance": 5000.0,
        "holdings": {"FEST": 50, "OLD": 0},
        "history": [{"ts": 1, "side": "buy", "ticker": "FEST", "qty": 50, "price": 100.0}],
    }
    html = MarketRenderer().render_account("Alice", user, {"FEST": 110.0})
    assert "Alice" in html
    assert "5000.00" in html
    assert "10500.00" in html
    assert "BUY FEST x50 @ 100.00" in html
    assert "OLD" not in html
