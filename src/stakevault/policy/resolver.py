"""Policy resolver — loads vault parameters from the config directory.

Parameters live in config/vault_params.json:

    precision                   reward-per-share scale (power of ten)
    multiplier_base             1.0x in basis points
    multiplier_cap              ceiling of the loyalty factor
    multiplier_rate_per_epoch   factor growth per counted epoch

Validation is fail-closed: a malformed or out-of-range file raises
ValueError at load time rather than producing a vault with silently
wrong economics.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict

from stakevault.accounting.fixed_point import (
    MULTIPLIER_BASE,
    MULTIPLIER_CAP,
    MULTIPLIER_RATE_PER_EPOCH,
    PRECISION,
)

PARAMS_FILE = "vault_params.json"


@dataclass(frozen=True)
class VaultParams:
    """Validated economic parameters of a vault."""
    precision: int = PRECISION
    multiplier_base: int = MULTIPLIER_BASE
    multiplier_cap: int = MULTIPLIER_CAP
    multiplier_rate_per_epoch: int = MULTIPLIER_RATE_PER_EPOCH

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class PolicyResolver:
    """Resolves vault parameters from a raw params mapping.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        params = resolver.vault_params()
    """

    def __init__(self, params: Dict[str, Any]) -> None:
        self._params = params
        self._vault_params = _validate(params.get("vault", {}))

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        path = Path(config_dir) / PARAMS_FILE
        if not path.exists():
            raise ValueError(f"Vault parameter file not found: {path}")
        with path.open("r", encoding="utf-8") as handle:
            return cls(json.load(handle))

    @classmethod
    def defaults(cls) -> PolicyResolver:
        return cls({"vault": VaultParams().to_dict()})

    def vault_params(self) -> VaultParams:
        return self._vault_params

    def version(self) -> str:
        return str(self._params.get("version", "unversioned"))


def _validate(raw: Dict[str, Any]) -> VaultParams:
    defaults = VaultParams()
    values: Dict[str, int] = {}
    for name, default in defaults.to_dict().items():
        value = raw.get(name, default)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"vault.{name} must be an integer, got {value!r}")
        values[name] = value

    params = VaultParams(**values)
    if params.precision <= 0 or 10 ** (len(str(params.precision)) - 1) != params.precision:
        raise ValueError(f"vault.precision must be a positive power of ten, got {params.precision}")
    if params.multiplier_base <= 0:
        raise ValueError("vault.multiplier_base must be positive")
    if params.multiplier_cap < params.multiplier_base:
        raise ValueError(
            f"vault.multiplier_cap ({params.multiplier_cap}) must be >= "
            f"multiplier_base ({params.multiplier_base})"
        )
    if params.multiplier_rate_per_epoch < 0:
        raise ValueError("vault.multiplier_rate_per_epoch must be non-negative")
    return params
