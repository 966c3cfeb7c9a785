"""stakevault — pooled staking vault with epoch-indexed rewards and a loyalty multiplier."""

from stakevault.errors import (
    AlreadyInitialized,
    ArithmeticOverflow,
    EpochOutOfRange,
    InvalidAmount,
    NotInitialized,
    TransferFailed,
    Unauthorized,
    VaultError,
)
from stakevault.vault import StakingVault

__version__ = "0.1.0"

__all__ = [
    "AlreadyInitialized",
    "ArithmeticOverflow",
    "EpochOutOfRange",
    "InvalidAmount",
    "NotInitialized",
    "StakingVault",
    "TransferFailed",
    "Unauthorized",
    "VaultError",
]
