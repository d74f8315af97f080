#!/usr/bin/env python3
"""
Call a contract entry point on a Casper node.

Usage:
    casper-deploy execute --contract asset_forwarder i_deposit
    casper-deploy execute --contract gateway set_bridge_fees --arg new_fees=12 --wait
    casper-deploy execute --profile my_contract.json init --dry-run
    casper-deploy query asset_forwarder_contract_hash/some_key
    casper-deploy entry-points --contract batch_handler

Configuration comes from flags, then environment variables (a .env file is
loaded if present): NODE_ADDRESS, ACCOUNT_HASH, CHAIN_NAME, SECRET_KEY_PATH,
CASPER_CLIENT (e.g. "cargo run --release --").
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Dict, List, Optional

from .cltypes import describe
from .config import load_config
from .errors import DeployError, InvalidArgumentError
from .orchestrator import run_invocation, run_query
from .registry import ContractProfile, bundled_profile, bundled_profiles, load_profile

logger = logging.getLogger(__name__)


def parse_overrides(pairs: Optional[List[str]]) -> Dict[str, str]:
    overrides = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise InvalidArgumentError(f"--arg expects name=value, got {pair!r}")
        overrides[name] = value
    return overrides


def _profile_from_args(args: argparse.Namespace) -> ContractProfile:
    if args.profile:
        return load_profile(args.profile)
    return bundled_profile(args.contract)


def _add_connection_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--node-address", type=str, default=None, help="Node address (NODE_ADDRESS)")
    parser.add_argument("--account-hash", type=str, default=None, help="Account holding the named keys (ACCOUNT_HASH)")
    parser.add_argument("--env-file", type=str, default=None, help="Load environment from this file instead of .env")


def _add_profile_flags(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--contract", type=str, choices=bundled_profiles(), help="Bundled contract profile")
    group.add_argument("--profile", type=str, help="Path to a contract profile JSON file")


class UsageParser(argparse.ArgumentParser):
    """ArgumentParser whose usage errors exit 1 like every other failure."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = UsageParser(prog="casper-deploy", description="Call contract entry points on a Casper node")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    execute = subparsers.add_parser("execute", help="Resolve the contract package and submit a deploy")
    _add_profile_flags(execute)
    _add_connection_flags(execute)
    execute.add_argument("entry_point", nargs="?", help="Entry point to call")
    execute.add_argument("--arg", action="append", metavar="NAME=VALUE", help="Override an argument value (repeatable)")
    execute.add_argument("--chain-name", type=str, default=None, help="Chain name (CHAIN_NAME)")
    execute.add_argument("--secret-key", type=str, default=None, help="Signing key file (SECRET_KEY_PATH)")
    execute.add_argument("--payment-amount", type=int, default=None, help="Override the profile's payment amount")
    execute.add_argument("--wait", action="store_true", help="Wait for the deploy to execute")
    execute.add_argument("--dry-run", action="store_true", help="Resolve and print the client command without submitting")

    query = subparsers.add_parser("query", help="Query a path under the account at the current state root")
    _add_connection_flags(query)
    query.add_argument("path", help="Slash separated named-key path, e.g. asset_forwarder_contract_hash/foo")
    query.add_argument("--key", type=str, default=None, help="Base key to query instead of the account")

    entry_points = subparsers.add_parser("entry-points", help="List entry points and their arguments")
    _add_profile_flags(entry_points)

    return parser


def _config_from_args(args: argparse.Namespace):
    return load_config(
        overrides={
            "NODE_ADDRESS": args.node_address,
            "ACCOUNT_HASH": args.account_hash,
            "CHAIN_NAME": getattr(args, "chain_name", None),
            "SECRET_KEY_PATH": getattr(args, "secret_key", None),
        },
        env_file=args.env_file,
    )


def cmd_execute(parser: argparse.ArgumentParser, args: argparse.Namespace) -> int:
    if not args.entry_point:
        print("No entry point provided. Usage: casper-deploy execute --contract NAME <entry_point>", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    profile = _profile_from_args(args)
    overrides = parse_overrides(args.arg)
    # Fail on unknown entry points before reading configuration or touching the node
    profile.build_arguments(args.entry_point, overrides)
    config = _config_from_args(args)

    print("=" * 60)
    print(f"  {profile.contract}: {args.entry_point}")
    print("=" * 60)
    print(f"Node: {config.node_address}")
    print(f"Account: {config.account_hash}")

    outcome = asyncio.run(run_invocation(
        config,
        profile,
        args.entry_point,
        overrides=overrides,
        payment_amount=args.payment_amount,
        wait=args.wait,
        dry_run=args.dry_run,
    ))

    print(f"State root hash: {outcome.state_root_hash}")
    print(f"Package hash: {outcome.package_hash}")
    if args.dry_run:
        print("\n📝 Dry run, deploy not submitted")
        if outcome.command:
            print("   " + " ".join(outcome.command))
        return 0

    print(f"\n✅ Deploy submitted!")
    print(f"   Deploy hash: {outcome.result.deploy_hash}")
    if outcome.status is not None:
        if not outcome.status.executed:
            print("   ⏳ Not executed yet, check again later")
        elif outcome.status.success:
            print("   ✅ Executed successfully")
        else:
            print(f"   ❌ Execution failed: {outcome.status.error_message}")
            return 1
    return 0


def cmd_query(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    stored_value = asyncio.run(run_query(config, args.path, key=args.key))
    print(json.dumps(stored_value, indent=2))
    return 0


def cmd_entry_points(args: argparse.Namespace) -> int:
    profile = _profile_from_args(args)
    print(f"{profile.contract} (named key {profile.named_key}, payment {profile.payment_amount})")
    for name in profile.entry_point_names():
        spec = profile.entry_points[name]
        print(f"  {name}")
        for arg in spec.arguments:
            print(f"      {arg.name}: {describe(arg.cl_type)} = {json.dumps(arg.value)}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        if args.command == "execute":
            return cmd_execute(parser, args)
        if args.command == "query":
            return cmd_query(args)
        return cmd_entry_points(args)
    except DeployError as e:
        logger.debug("Invocation aborted", exc_info=True)
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n❌ Interrupted", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
