"""Ledger anchoring — publishes the epoch-ledger root on Ethereum.

Anchoring embeds the Merkle root of the epoch ledger in the data field of
a 0-ETH self-send transaction. No contract code runs; the chain serves as
a timestamped witness that the ledger had exactly this content at this
height, so allocations can never be rewritten after the fact without the
discrepancy being publicly visible.

web3 and eth_account are imported lazily so the accounting engine has no
hard dependency on an Ethereum client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict

logger = logging.getLogger(__name__)

SEPOLIA_CHAIN_ID = 11155111

EXPLORERS: Dict[int, str] = {
    1: "https://etherscan.io/tx/",
    SEPOLIA_CHAIN_ID: "https://sepolia.etherscan.io/tx/",
}


@dataclass(frozen=True)
class AnchorRecord:
    """A record of a successful ledger anchor."""
    ledger_root: str
    epoch_count: int
    tx_hash: str
    block_number: int
    chain_id: int
    timestamp_utc: str
    explorer_url: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "ledger_root": self.ledger_root,
            "epoch_count": self.epoch_count,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "chain_id": self.chain_id,
            "timestamp_utc": self.timestamp_utc,
            "explorer_url": self.explorer_url,
        }


def anchor_to_chain(
    ledger_root: str,
    epoch_count: int,
    rpc_url: str,
    private_key: str,
    chain_id: int = SEPOLIA_CHAIN_ID,
    gas: int = 30_000,
    gas_price_gwei: str = "2",
) -> AnchorRecord:
    """Anchor a ledger root by embedding it in a self-send transaction.

    Waits for one confirmation.

    Args:
        ledger_root: "sha256:<hex>" root from LedgerMerkleTree.
        epoch_count: Number of epochs the root commits to.
        rpc_url: Ethereum RPC endpoint URL.
        private_key: Hex-encoded private key for signing.
        chain_id: Network chain ID (default: Sepolia).
        gas: Gas limit for the transaction.
        gas_price_gwei: Gas price in gwei.
    """
    from web3 import Web3, HTTPProvider
    from eth_account import Account

    digest = ledger_root.removeprefix("sha256:")
    payload = epoch_count.to_bytes(8, "big") + bytes.fromhex(digest)

    w3 = Web3(HTTPProvider(rpc_url))
    acct = Account.from_key(private_key)

    nonce = w3.eth.get_transaction_count(acct.address)
    tx = {
        "to": acct.address,
        "value": 0,
        "gas": gas,
        "gasPrice": w3.to_wei(gas_price_gwei, "gwei"),
        "nonce": nonce,
        "chainId": chain_id,
        "data": payload,
    }

    signed = acct.sign_transaction(tx)
    tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    logger.info(
        "Ledger anchor sent",
        extra={"event": "vault.anchor_sent", "tx_hash": tx_hash.hex(), "epochs": epoch_count},
    )

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=300)
    explorer = EXPLORERS.get(chain_id)
    explorer_url = f"{explorer}{tx_hash.hex()}" if explorer else ""

    record = AnchorRecord(
        ledger_root=ledger_root,
        epoch_count=epoch_count,
        tx_hash=tx_hash.hex(),
        block_number=receipt.blockNumber,
        chain_id=chain_id,
        timestamp_utc=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        explorer_url=explorer_url,
    )
    logger.info(
        "Ledger anchor confirmed",
        extra={"event": "vault.anchor_confirmed", "block": record.block_number},
    )
    return record
