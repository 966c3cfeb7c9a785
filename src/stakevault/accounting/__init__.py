"""Accounting core — epoch ledger, member store, settlement, multiplier.

These components are pure in-memory state machines. Token movement,
authorization, audit logging and persistence live in the vault façade
and the service layer.
"""

from stakevault.accounting.epoch_ledger import EpochLedger
from stakevault.accounting.member_store import MemberStore
from stakevault.accounting.multiplier import MultiplierEngine
from stakevault.accounting.settlement import SettlementEngine, SettlementOutcome

__all__ = [
    "EpochLedger",
    "MemberStore",
    "MultiplierEngine",
    "SettlementEngine",
    "SettlementOutcome",
]
