"""
Pricing model

Two mechanisms move a price:
1) Impact: each trade nudges the price exponentially by its size relative to
   liquidity, scaled by volatility.
2) Drift: periodic small random noise plus a gentle pull back toward the
   stock's base price. Tick frequency grows with volatility.

Everything here is pure; callers own the state and the randomness.
"""
import math
import re
from typing import Any, Optional

PRICE_FLOOR = 0.01
MIN_VOLATILITY = 0.2
MAX_VOLATILITY = 5.0
DEFAULT_PRICE = 100.0
DEFAULT_VOLATILITY = 1.0
MIN_INTERVAL_MS = 250
NOISE_SCALE = 0.004          # +/- 0.2% at volatility 1
MEAN_REVERSION = 0.01        # pull 1% of the gap per tick
MAX_IMPACT_EXPONENT = 700.0  # math.exp overflows just past 709

_TICKER_STRIP = re.compile(r'[^A-Z0-9]')


def clamp(n: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, n))


def round2(n: float) -> float:
    # half-up on cents; magnitudes past float range have no cents left
    scaled = n * 100
    if not math.isfinite(scaled):
        return n
    return math.floor(scaled + 0.5) / 100


def to_number(value: Any) -> Optional[float]:
    """Coerce admin/user input to a finite float, or None"""
    if isinstance(value, bool) or value is None:
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(n):
        return None
    return n


def clamp_volatility(vol: float) -> float:
    return clamp(vol, MIN_VOLATILITY, MAX_VOLATILITY)


def floor_price(price: float) -> float:
    return round2(max(PRICE_FLOOR, price))


def normalize_ticker(ticker: Any, max_length: int = 6) -> str:
    """Uppercase, keep only A-Z0-9, truncate"""
    return _TICKER_STRIP.sub('', str(ticker or '').upper())[:max_length]


def normalize_nickname(nickname: Any, max_length: int = 24) -> str:
    """Trim, truncate, then trim again so a second pass is a no-op"""
    return str(nickname or '').strip()[:max_length].rstrip()


def parse_quantity(qty: Any) -> int:
    """Floor to an integer share count; anything unusable becomes 0"""
    n = to_number(qty)
    if n is None:
        return 0
    return math.floor(n)


def drift_interval_ms(base_tick_ms: float, volatility: float,
                      min_interval_ms: int = MIN_INTERVAL_MS) -> int:
    """Higher volatility ticks more often, never faster than min_interval_ms"""
    return max(min_interval_ms, math.floor(base_tick_ms / max(MIN_VOLATILITY, volatility) + 0.5))


def drift_price(price: float, base_price: float, volatility: float, u: float,
                noise_scale: float = NOISE_SCALE,
                mean_reversion: float = MEAN_REVERSION) -> float:
    """
    One drift step

    Args:
        price: current price
        base_price: mean-reversion anchor
        volatility: stock volatility
        u: uniform sample in [0, 1)
    """
    noise = (u - 0.5) * noise_scale * volatility
    pull = (base_price - price) * mean_reversion
    return round2(max(PRICE_FLOOR, price * (1 + noise) + pull))


def trade_impact(qty: int, volatility: float, liquidity: float) -> float:
    return (qty / max(1.0, liquidity)) * volatility


def impact_price(price: float, side: str, qty: int, volatility: float, liquidity: float) -> float:
    """
    Post-trade price: buys push up, sells push down, never below the floor

    The exponent is capped so huge orders give a huge price instead of an
    OverflowError; the result is still infinite when the capped move cannot
    be represented, and callers must reject such trades.
    """
    sign = 1 if side == "buy" else -1
    impact = min(trade_impact(qty, volatility, liquidity), MAX_IMPACT_EXPONENT)
    return round2(max(PRICE_FLOOR, price * math.exp(sign * impact)))
