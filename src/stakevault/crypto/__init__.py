"""Ledger commitments — Merkle root over epoch snapshots, on-chain anchoring."""

from stakevault.crypto.merkle import LedgerMerkleTree, MerkleProof, verify_proof

__all__ = ["LedgerMerkleTree", "MerkleProof", "verify_proof"]
