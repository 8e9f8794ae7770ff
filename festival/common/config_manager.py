"""
Market configuration

Flat key/value configuration with defaults, overlaid from a dict and/or the
process environment. One instance is created at startup and handed to every
component that needs it.
"""
import os
from pathlib import Path
from typing import Any, Dict, Optional


class ConfigManager:
    """
    Market configuration

    Holds runtime settings (data directory, admin secret, port) and the
    tuning constants of the pricing model. Values persisted with the market
    snapshot (starting balance, base tick, liquidity) live in
    ``MarketConfig`` instead and are not duplicated here.

    Usage:
        cfg = ConfigManager({"data_dir": "/tmp/festival"})
        cfg.min_interval_ms   # 250
    """

    DEFAULT_CONFIG = {
        "data_dir": None,
        "state_file": "state.json",
        "admin_key": "festival2025",
        "port": 3000,
        "min_interval_ms": 250,
        "save_debounce_ms": 300,
        "save_max_wait_ms": 2000,
        "noise_scale": 0.004,
        "mean_reversion": 0.01,
        "history_limit": 200,
        "history_view": 20,
        "nickname_max_length": 24,
        "ticker_max_length": 6,
        "reset_wipes_accounts": True,
    }

    ENV_KEYS = {
        "ADMIN_KEY": "admin_key",
        "PORT": "port",
        "FESTIVAL_DATA_DIR": "data_dir",
    }

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self._config: Dict[str, Any] = self.DEFAULT_CONFIG.copy()
        if config:
            self.load_config(config)

    @classmethod
    def from_env(cls, config: Optional[Dict[str, Any]] = None,
                 environ: Optional[Dict[str, str]] = None) -> 'ConfigManager':
        """
        Build a configuration from the environment

        Args:
            config: explicit overrides, applied after the environment
            environ: mapping to read instead of ``os.environ``
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for env_key, key in cls.ENV_KEYS.items():
            if env.get(env_key):
                values[key] = env[env_key]
        if "port" in values:
            values["port"] = int(values["port"])
        inst = cls(values)
        if config:
            inst.load_config(config)
        return inst

    def load_config(self, config: Dict[str, Any]) -> None:
        """
        Merge a flat configuration dict

        Args:
            config: key/value overrides; unknown keys are kept as-is
        """
        if config:
            self._config.update(config)

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def check_admin_key(self, key: Any) -> bool:
        """Shared-secret gate used by transports to authorize admin commands"""
        return str(key) == str(self._config.get("admin_key"))

    @property
    def data_dir(self) -> Path:
        value = self._config.get("data_dir")
        if value:
            return Path(value)
        # fall back to data/ under the project root
        return Path(__file__).resolve().parents[2] / "data"

    @property
    def state_file(self) -> str:
        return self._config.get("state_file", "state.json")

    @property
    def port(self) -> int:
        return int(self._config.get("port", 3000))

    @property
    def min_interval_ms(self) -> int:
        return int(self._config.get("min_interval_ms", 250))

    @property
    def save_debounce_ms(self) -> int:
        return int(self._config.get("save_debounce_ms", 300))

    @property
    def save_max_wait_ms(self) -> int:
        return int(self._config.get("save_max_wait_ms", 2000))

    @property
    def noise_scale(self) -> float:
        return float(self._config.get("noise_scale", 0.004))

    @property
    def mean_reversion(self) -> float:
        return float(self._config.get("mean_reversion", 0.01))

    @property
    def history_limit(self) -> int:
        return int(self._config.get("history_limit", 200))

    @property
    def history_view(self) -> int:
        return int(self._config.get("history_view", 20))

    @property
    def nickname_max_length(self) -> int:
        return int(self._config.get("nickname_max_length", 24))

    @property
    def ticker_max_length(self) -> int:
        return int(self._config.get("ticker_max_length", 6))

    @property
    def reset_wipes_accounts(self) -> bool:
        return bool(self._config.get("reset_wipes_accounts", True))
