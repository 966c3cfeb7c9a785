"""Merkle commitment over the epoch ledger.

Leaves are EpochSnapshot.leaf_hash() values kept in ledger order, so a
proof also pins the epoch's position. An odd node at any level is paired
with itself. The empty ledger commits to the hash of the empty string.

Anyone holding a snapshot and a proof can check it against a published
root without seeing the rest of the ledger.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from stakevault.models.vault import EpochSnapshot


@dataclass(frozen=True)
class MerkleProof:
    """Inclusion proof for one epoch snapshot."""
    epoch_index: int
    leaf_hash: str
    path: List[Tuple[str, str]]  # (sibling_hash, "L" | "R")
    root: str


class LedgerMerkleTree:
    """Deterministic SHA-256 Merkle tree over ordered ledger snapshots.

    Usage:
        tree = LedgerMerkleTree.from_snapshots(ledger.snapshots())
        root = tree.root
        proof = tree.inclusion_proof(3)
        verify_proof(ledger.get_epoch(3), proof)
    """

    def __init__(self, leaves: Iterable[str]) -> None:
        self._levels: List[List[str]] = [[_strip(leaf) for leaf in leaves]]
        current = self._levels[0]
        while len(current) > 1:
            current = [
                _hash_pair(current[i], current[i + 1] if i + 1 < len(current) else current[i])
                for i in range(0, len(current), 2)
            ]
            self._levels.append(current)

    @classmethod
    def from_snapshots(cls, snapshots: Iterable[EpochSnapshot]) -> LedgerMerkleTree:
        return cls(s.leaf_hash() for s in snapshots)

    @property
    def leaf_count(self) -> int:
        return len(self._levels[0])

    @property
    def root(self) -> str:
        if not self._levels[0]:
            return "sha256:" + hashlib.sha256(b"").hexdigest()
        return "sha256:" + self._levels[-1][0]

    def inclusion_proof(self, epoch_index: int) -> MerkleProof:
        """Proof for the 1-based epoch index."""
        if epoch_index < 1 or epoch_index > self.leaf_count:
            raise IndexError(f"Epoch {epoch_index} not in tree of {self.leaf_count} leaves")

        position = epoch_index - 1
        path: List[Tuple[str, str]] = []
        for level in self._levels[:-1]:
            if position % 2 == 0:
                sibling = level[position + 1] if position + 1 < len(level) else level[position]
                path.append((sibling, "R"))
            else:
                path.append((level[position - 1], "L"))
            position //= 2

        return MerkleProof(
            epoch_index=epoch_index,
            leaf_hash="sha256:" + self._levels[0][epoch_index - 1],
            path=path,
            root=self.root,
        )


def verify_proof(snapshot: EpochSnapshot, proof: MerkleProof) -> bool:
    """Recompute the root from a snapshot and its proof."""
    if snapshot.index != proof.epoch_index:
        return False
    node = _strip(snapshot.leaf_hash())
    if node != _strip(proof.leaf_hash):
        return False
    for sibling, side in proof.path:
        node = _hash_pair(sibling, node) if side == "L" else _hash_pair(node, sibling)
    return "sha256:" + node == proof.root


def _strip(value: str) -> str:
    return value.removeprefix("sha256:")


def _hash_pair(left: str, right: str) -> str:
    combined = f"{_strip(left)}{_strip(right)}".encode("utf-8")
    return hashlib.sha256(combined).hexdigest()
