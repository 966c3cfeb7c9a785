"""State store — durable JSON snapshot of the vault between runs.

The snapshot has two sections:
    vault          ledger, members and totals from StakingVault.to_state()
    collaborators  allocator identity and token ledgers (when in-memory)

Writes go to a temporary file that is renamed over the target, so a
crash mid-write leaves the previous snapshot intact. The event log
remains the audit record; this file only saves replaying it.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional


class StateStore:
    """JSON-file state store.

    Usage:
        store = StateStore(storage_path=data_dir / "state.json")
        store.save_vault_state(vault.to_state())
        state = store.load_vault_state()
    """

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path
        self._data: dict[str, Any] = {}
        if storage_path.exists():
            with storage_path.open("r", encoding="utf-8") as f:
                self._data = json.load(f)

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def load_vault_state(self) -> Optional[dict[str, Any]]:
        return self._data.get("vault")

    def load_collaborators(self) -> Optional[dict[str, Any]]:
        return self._data.get("collaborators")

    def save_vault_state(self, state: dict[str, Any]) -> None:
        self._write({**self._data, "vault": state})

    def save_collaborators(self, collaborators: dict[str, Any]) -> None:
        self._write({**self._data, "collaborators": collaborators})

    def save(self, vault_state: dict[str, Any], collaborators: dict[str, Any]) -> None:
        """Write both sections in one atomic replace."""
        self._write({**self._data, "vault": vault_state, "collaborators": collaborators})

    def _write(self, data: dict[str, Any]) -> None:
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self._storage_path)
        self._data = data
