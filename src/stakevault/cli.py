"""stakevault CLI — command-line interface for a local staking vault.

Usage:
    python -m stakevault.cli init --allocator manager
    python -m stakevault.cli mint --account alice --asset stake --amount 1000
    python -m stakevault.cli stake --account alice --amount 10
    python -m stakevault.cli allocate --caller manager --amount 500
    python -m stakevault.cli account --account alice
    python -m stakevault.cli claim --account alice
    python -m stakevault.cli reconcile
    python -m stakevault.cli check-invariants

Amounts are decimal token strings ("12.5") converted to base units using
--decimals (default 18). Views print base units.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from decimal import Decimal, InvalidOperation, localcontext
from pathlib import Path

from stakevault.crypto.merkle import LedgerMerkleTree
from stakevault.persistence.event_log import EventLog
from stakevault.persistence.state_store import StateStore
from stakevault.policy.resolver import PolicyResolver
from stakevault.service import ServiceResult, VaultService


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def to_units(text: str, decimals: int) -> int:
    """Convert a decimal token amount to integer base units, exactly."""
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Not a number: {text!r}")
    if not value.is_finite():
        raise ValueError(f"Not a finite amount: {text!r}")
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{text} has more than {decimals} decimal places")
    return int(scaled)


def _make_service(config_dir: Path, data_dir: Path = DEFAULT_DATA) -> VaultService:
    """Create a VaultService with durable persistence."""
    data_dir.mkdir(parents=True, exist_ok=True)
    resolver = PolicyResolver.from_config_dir(config_dir)
    event_log = EventLog(storage_path=data_dir / "events.jsonl")
    state_store = StateStore(storage_path=data_dir / "state.json")
    return VaultService(resolver, event_log=event_log, state_store=state_store)


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def _amount(args: argparse.Namespace) -> int:
    return to_units(args.amount, args.decimals)


def cmd_init(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data_dir)
    return _report(service.initialize(
        allocator=args.allocator,
        reward_asset=args.reward_asset,
        stake_asset=args.stake_asset,
    ))


def cmd_mint(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data_dir)
    return _report(service.mint(args.account, _amount(args), asset=args.asset))


def cmd_stake(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data_dir)
    return _report(service.stake(args.account, _amount(args)))


def cmd_withdraw(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data_dir)
    return _report(service.withdraw(args.account, _amount(args)))


def cmd_claim(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data_dir)
    return _report(service.claim_reward(args.account))


def cmd_allocate(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data_dir)
    return _report(service.allocate_incentive(args.caller, _amount(args)))


def cmd_fund(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data_dir)
    return _report(service.fund_reserve(args.account, _amount(args)))


def cmd_account(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data_dir)
    print(json.dumps(service.account_summary(args.account), indent=2))
    return 0


def cmd_member(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data_dir)
    print(json.dumps(service.member(args.account), indent=2))
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data_dir)
    return _report(service.history(args.index))


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data_dir)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_reconcile(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data_dir)
    print(json.dumps(service.reconcile(), indent=2))
    return 0


def cmd_ledger_root(args: argparse.Namespace) -> int:
    """Print the ledger Merkle root, optionally with a proof for one epoch."""
    service = _make_service(args.config, args.data_dir)
    vault = service.vault
    tree = LedgerMerkleTree.from_snapshots(
        vault.history(i) for i in range(1, vault.current_epoch() + 1)
    )
    output: dict = {"epochs": tree.leaf_count, "root": tree.root}
    if args.proof is not None:
        try:
            proof = tree.inclusion_proof(args.proof)
        except IndexError as e:
            print(f"Failed: {e}", file=sys.stderr)
            return 1
        output["proof"] = {
            "epoch_index": proof.epoch_index,
            "leaf_hash": proof.leaf_hash,
            "path": [list(step) for step in proof.path],
        }
    print(json.dumps(output, indent=2))
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run vault parameter invariant checks."""
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stakevault",
        description="stakevault — pooled staking vault CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=DEFAULT_DATA,
        help="Directory for events.jsonl and state.json (default: data/)",
    )
    parser.add_argument(
        "--decimals",
        type=int,
        default=18,
        help="Token decimals used to convert amounts (default: 18)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    sub = parser.add_subparsers(dest="command")

    # init
    p_init = sub.add_parser("init", help="Initialize the vault")
    p_init.add_argument("--allocator", required=True, help="Allocator account")
    p_init.add_argument("--reward-asset", default="REWARD", help="Reward asset symbol")
    p_init.add_argument("--stake-asset", default="STAKE", help="Stake asset symbol")

    # mint
    p_mint = sub.add_parser("mint", help="Credit in-memory tokens to an account")
    p_mint.add_argument("--account", required=True)
    p_mint.add_argument("--asset", choices=["stake", "reward"], default="stake")
    p_mint.add_argument("--amount", required=True)

    for name, help_text in (
        ("stake", "Stake tokens"),
        ("withdraw", "Withdraw staked tokens"),
        ("fund", "Fund the loyalty-bonus reserve"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--account", required=True)
        p.add_argument("--amount", required=True)

    p_claim = sub.add_parser("claim", help="Claim pending rewards")
    p_claim.add_argument("--account", required=True)

    p_alloc = sub.add_parser("allocate", help="Allocate an incentive (allocator only)")
    p_alloc.add_argument("--caller", required=True)
    p_alloc.add_argument("--amount", required=True)

    p_acct = sub.add_parser("account", help="Balance, earned and multiplier for an account")
    p_acct.add_argument("--account", required=True)

    p_member = sub.add_parser("member", help="Raw member record")
    p_member.add_argument("--account", required=True)

    p_hist = sub.add_parser("history", help="Show one epoch snapshot")
    p_hist.add_argument("--index", type=int, required=True)

    sub.add_parser("status", help="Show vault status")
    sub.add_parser("reconcile", help="Reconcile allocations against bookings")

    p_root = sub.add_parser("ledger-root", help="Ledger Merkle root")
    p_root.add_argument("--proof", type=int, help="Epoch index to prove")

    sub.add_parser("check-invariants", help="Run parameter invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "init": cmd_init,
        "mint": cmd_mint,
        "stake": cmd_stake,
        "withdraw": cmd_withdraw,
        "fund": cmd_fund,
        "claim": cmd_claim,
        "allocate": cmd_allocate,
        "account": cmd_account,
        "member": cmd_member,
        "history": cmd_history,
        "status": cmd_status,
        "reconcile": cmd_reconcile,
        "ledger-root": cmd_ledger_root,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
