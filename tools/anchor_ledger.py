#!/usr/bin/env python3
"""Anchor the vault's epoch-ledger root on Ethereum Sepolia.

Computes the Merkle root over every recorded epoch snapshot and embeds
it in a 0-ETH self-send transaction. The confirmed anchor is written to
the vault's audit log as a ledger_anchored event.

Usage:
    python3 tools/anchor_ledger.py
    python3 tools/anchor_ledger.py --data-dir /path/to/data

Requires:
    SEPOLIA_RPC_URL and PRIVATE_KEY in a .env file at the project root.
"""

import argparse
import os
import sys
from pathlib import Path

# Add src to path for stakevault imports
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from dotenv import load_dotenv
from stakevault.cli import DEFAULT_CONFIG, DEFAULT_DATA, _make_service
from stakevault.crypto.anchor import anchor_to_chain


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Anchor the epoch-ledger root on Sepolia")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG)
    parser.add_argument("--data-dir", type=Path, default=DEFAULT_DATA)
    parser.add_argument("--gas-price-gwei", default="10")
    args = parser.parse_args(argv)

    load_dotenv(ROOT / ".env")
    rpc_url = os.getenv("SEPOLIA_RPC_URL")
    private_key = os.getenv("PRIVATE_KEY") or os.getenv("SEPOLIA_PRIVATE_KEY")
    if not rpc_url or not private_key:
        print("ERROR: Missing SEPOLIA_RPC_URL and/or PRIVATE_KEY in .env")
        return 1

    service = _make_service(args.config, args.data_dir)
    epochs = service.vault.current_epoch()
    if epochs == 0:
        print("ERROR: Ledger is empty; nothing to anchor")
        return 1
    root = service.vault.ledger_root()

    print("=" * 60)
    print("STAKEVAULT — LEDGER ANCHOR")
    print("=" * 60)
    print(f"  Epochs:         {epochs}")
    print(f"  Ledger root:    {root}")
    print()
    print("Anchoring to Ethereum Sepolia (Chain ID: 11155111) ...")

    record = anchor_to_chain(
        ledger_root=root,
        epoch_count=epochs,
        rpc_url=rpc_url,
        private_key=private_key,
        gas_price_gwei=args.gas_price_gwei,
    )
    result = service.record_anchor(record)
    if not result.success:
        print(f"WARNING: anchor confirmed but not logged: {'; '.join(result.errors)}")

    print()
    print(f"  Tx:             {record.tx_hash}")
    print(f"  Eth Block:      {record.block_number}")
    print(f"  Explorer:       {record.explorer_url}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
