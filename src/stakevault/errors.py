"""Vault error kinds.

Every error aborts the whole operation. Nothing inside the engine
recovers locally; the service layer and the CLI decide what to do.

Each kind also subclasses the closest builtin so callers that only
care about, say, bad input can keep catching ValueError.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base class for every error raised by the vault engine."""


class InvalidAmount(VaultError, ValueError):
    """Zero, negative, or over-balance amount."""


class Unauthorized(VaultError, PermissionError):
    """Caller is not allowed to perform the operation."""


class NotInitialized(VaultError, RuntimeError):
    """Operation attempted before initialize()."""


class AlreadyInitialized(VaultError, RuntimeError):
    """initialize() called a second time."""


class EpochOutOfRange(VaultError, IndexError):
    """Unknown epoch index, or a checkpoint ahead of the ledger."""


class ArithmeticOverflow(VaultError, OverflowError):
    """A checked operation left the unsigned 256-bit range."""


class TransferFailed(VaultError):
    """The token-transfer collaborator refused a movement of funds."""
