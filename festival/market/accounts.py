"""
Account lookup

Accounts are keyed by bare nickname; there is no secret, so anyone typing the
same nickname gets the same account. The ledger only talks to ``AccountBook``,
which is the one place a real identity scheme would plug in.
"""
import threading
from typing import Any, Optional

from ..common.config_manager import ConfigManager
from . import pricing
from .models import Account, MarketState, PublicAccount


class AccountBook:
    def __init__(self, state: MarketState, config: Optional[ConfigManager] = None):
        self.state = state
        self.config = config or ConfigManager()
        self.lock = threading.RLock()

    def normalize(self, nickname: Any) -> str:
        return pricing.normalize_nickname(nickname, self.config.nickname_max_length)

    def get(self, nickname: str) -> Optional[Account]:
        return self.state.users.get(nickname)

    def ensure(self, nickname: Any) -> Optional[str]:
        """Create the account on first sight; returns the clean nickname or None"""
        clean = self.normalize(nickname)
        if not clean:
            return None
        with self.lock:
            if clean not in self.state.users:
                self.state.users[clean] = Account(balance=self.state.config.startingBalance)
        return clean

    def public_view(self, nickname: str) -> Optional[PublicAccount]:
        account = self.state.users.get(nickname)
        if account is None:
            return None
        view = self.config.history_view
        return PublicAccount(
            balance=account.balance,
            holdings=dict(account.holdings),
            history=account.history[-view:] if view > 0 else [],
        )

    def wipe(self):
        with self.lock:
            self.state.users.clear()

    def __contains__(self, nickname: str) -> bool:
        return nickname in self.state.users

    def __len__(self) -> int:
        return len(self.state.users)
