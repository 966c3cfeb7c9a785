"""Vault data models."""

from stakevault.models.vault import (
    EpochSnapshot,
    Member,
    ReconciliationReport,
    VaultTotals,
)

__all__ = [
    "EpochSnapshot",
    "Member",
    "ReconciliationReport",
    "VaultTotals",
]
