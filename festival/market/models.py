from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Literal, Optional


class Stock(BaseModel):
    name: str
    price: float
    basePrice: float
    volatility: float = 1.0
    paused: bool = False


class TradeRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    ts: int                  # epoch milliseconds
    side: Literal["buy", "sell"]
    ticker: str
    qty: int
    price: float             # execution price (pre-impact)


class Account(BaseModel):
    balance: float = 0.0
    holdings: Dict[str, int] = Field(default_factory=dict)
    history: List[TradeRecord] = Field(default_factory=list)


class PublicAccount(BaseModel):
    """What a viewer sees of an account"""
    balance: float
    holdings: Dict[str, int]
    history: List[TradeRecord]


class MarketConfig(BaseModel):
    startingBalance: float = 0.0
    baseTickMs: int = 2000       # drift interval at volatility 1
    liquidity: float = 800.0     # higher -> smaller impact per trade


class MarketState(BaseModel):
    """The single shared state tree; dumped, it is the persisted snapshot"""
    config: MarketConfig = Field(default_factory=MarketConfig)
    stocks: Dict[str, Stock] = Field(default_factory=dict)
    users: Dict[str, Account] = Field(default_factory=dict)

    @classmethod
    def default(cls) -> 'MarketState':
        return cls(
            config=MarketConfig(),
            stocks={"FEST": Stock(name="Festival", price=100.0, basePrice=100.0, volatility=1.0)},
            users={},
        )


class TradeResult(BaseModel):
    ok: bool
    error: Optional[str] = None
    errorKind: Optional[Literal["validation", "state"]] = None
    user: Optional[PublicAccount] = None
    newPrice: Optional[float] = None
