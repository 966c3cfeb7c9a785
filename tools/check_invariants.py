#!/usr/bin/env python3
"""Vault invariant checks against the executable parameter file."""

import json
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"
PARAMS_FILE = "vault_params.json"

REQUIRED_KEYS = (
    "precision",
    "multiplier_base",
    "multiplier_cap",
    "multiplier_rate_per_epoch",
)
UINT256_MAX = 2**256 - 1


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_params(vault: dict, errors: list[str]) -> None:
    """Validate types and ranges of the vault economics."""
    for key in REQUIRED_KEYS:
        value = vault.get(key)
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"vault.{key} must be an integer, got {value!r}")
    if errors:
        return

    precision = vault["precision"]
    base = vault["multiplier_base"]
    cap = vault["multiplier_cap"]
    rate = vault["multiplier_rate_per_epoch"]

    if precision <= 0 or 10 ** (len(str(precision)) - 1) != precision:
        errors.append(f"precision must be a positive power of ten, got {precision}")
    if base <= 0:
        errors.append(f"multiplier_base must be > 0, got {base}")
    if cap < base:
        errors.append(f"multiplier_cap ({cap}) must be >= multiplier_base ({base})")
    if rate < 0:
        errors.append(f"multiplier_rate_per_epoch must be >= 0, got {rate}")
    if cap > base and rate == 0:
        errors.append("multiplier_cap is unreachable with a zero growth rate")
    # A full-precision reward-per-share times the cap must still fit a uint256 product.
    if precision * cap > UINT256_MAX:
        errors.append("precision * multiplier_cap exceeds the uint256 range")


def check(config_dir: Path = CONFIG_DIR) -> int:
    path = Path(config_dir) / PARAMS_FILE
    if not path.exists():
        print(f"Invariant check failed:\n- missing {path}")
        return 1

    params = load_json(path)
    errors: list[str] = []

    if not params.get("version"):
        errors.append("vault_params.json must carry a version")
    vault = params.get("vault")
    if not isinstance(vault, dict):
        errors.append("vault_params.json must have a 'vault' section")
    else:
        check_params(vault, errors)

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check(Path(sys.argv[1]) if len(sys.argv) > 1 else CONFIG_DIR))
