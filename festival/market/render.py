from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader


class MarketRenderer:
    def __init__(self, template_dir: Optional[Path] = None):
        # __file__ is .../festival/market/render.py -> parents[2] is project root
        self.template_dir = Path(template_dir) if template_dir else \
            Path(__file__).resolve().parents[2] / "resources" / "market"
        self._env = Environment(loader=FileSystemLoader(str(self.template_dir)), autoescape=True)

    def render_template(self, template_name: str, **context) -> str:
        tpl = self._env.get_template(template_name)
        return tpl.render(**context)

    def render_board(self, stocks: Dict[str, Dict[str, Any]]):
        rows = []
        for ticker in sorted(stocks):
            s = stocks[ticker]
            base = s.get("basePrice") or s["price"]
            rows.append({
                "ticker": ticker,
                "name": s["name"],
                "price": s["price"],
                "change": (s["price"] - base) / base * 100,
                "volatility": s["volatility"],
                "paused": s["paused"],
            })
        return self.render_template("stock_board.html", stocks=rows)

    def render_account(self, nickname: str, user: Dict[str, Any], prices: Dict[str, float]):
        holdings = [
            {"ticker": t, "qty": q, "value": q * prices.get(t, 0.0)}
            for t, q in sorted(user["holdings"].items()) if q > 0
        ]
        worth = user["balance"] + sum(h["value"] for h in holdings)
        history = list(reversed(user["history"]))
        return self.render_template("account.html", nickname=nickname, user=user,
                                    holdings=holdings, worth=worth, history=history)
