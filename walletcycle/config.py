"""Run settings: defaults, optional TOML file, environment overrides."""

import os
import tomllib
from dataclasses import dataclass, fields, replace
from decimal import Decimal
from pathlib import Path
from typing import Optional

from walletcycle.errors import InvalidParameterError

ENV_PREFIX = "WALLETCYCLE_"


@dataclass(frozen=True)
class Settings:
    rpc_url: str = "http://127.0.0.1:8545"
    funder_private_key: str = ""
    batch_size: int = 50
    max_concurrent: int = 10
    poll_interval: float = 3.0  # seconds between receipt polls
    max_poll_attempts: int = 20
    max_retry_rounds: int = 3
    retry_pause: float = 10.0  # seconds between poll rounds
    batch_pause: float = 1.0  # seconds between batches
    return_percent: int = 95
    gas_limit: int = 21000
    gas_reserve_per_account: Decimal = Decimal("0.01")  # ETH, pre-flight estimate
    request_timeout: float = 10.0
    log_file: str = "walletcycle.log"

    def validate(self) -> "Settings":
        for name in ("batch_size", "max_concurrent", "max_poll_attempts", "max_retry_rounds", "gas_limit"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise InvalidParameterError(f"{name} must be a positive integer, got {value!r}")
        for name in ("poll_interval", "retry_pause", "batch_pause", "request_timeout"):
            if getattr(self, name) < 0:
                raise InvalidParameterError(f"{name} must not be negative")
        if not 0 < self.return_percent <= 100:
            raise InvalidParameterError(f"return_percent must be in (0, 100], got {self.return_percent}")
        if self.gas_reserve_per_account < 0:
            raise InvalidParameterError("gas_reserve_per_account must not be negative")
        return self


def _coerce(field_type, raw):
    if field_type in (int, "int"):
        return int(raw)
    if field_type in (float, "float"):
        return float(raw)
    if field_type in (Decimal, "Decimal"):
        return Decimal(str(raw))
    return str(raw)


def _overrides(source: dict, keyfunc) -> dict:
    values = {}
    for f in fields(Settings):
        key = keyfunc(f.name)
        if key in source and source[key] not in (None, ""):
            try:
                values[f.name] = _coerce(f.type, source[key])
            except (ValueError, ArithmeticError) as e:
                raise InvalidParameterError(f"Bad value for {key}: {source[key]!r}") from e
    return values


def load_settings(path: Optional[Path] = None, environ=None) -> Settings:
    """Defaults, then the ``[walletcycle]`` table of ``path``, then WALLETCYCLE_* env vars."""
    environ = os.environ if environ is None else environ
    settings = Settings()

    if path is not None:
        cfg = tomllib.loads(Path(path).read_text())
        settings = replace(settings, **_overrides(cfg.get("walletcycle", {}), lambda name: name))

    settings = replace(settings, **_overrides(environ, lambda name: ENV_PREFIX + name.upper()))
    return settings.validate()
