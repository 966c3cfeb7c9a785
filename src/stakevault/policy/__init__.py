"""Policy — vault parameters loaded from config/."""

from stakevault.policy.resolver import PolicyResolver, VaultParams

__all__ = ["PolicyResolver", "VaultParams"]
