#!/usr/bin/env python3
"""
Aura Operator CLI

Inspect counterbalancing and drain the local queue without the experiment UI.

Usage:
    aura --config experiment.yaml summary
    aura --config experiment.yaml order --server-aware
    aura --config experiment.yaml sync
    aura --config experiment.yaml status

Output: JSON to stdout (summary prints plain text)
"""

import argparse
import asyncio
import json
import sys

from aura.common.config import load_config_file
from aura.common.exceptions import AuraError
from aura.common.logging_setup import LogContext
from aura.session import ExperimentSession


async def _order(session: ExperimentSession, server_aware: bool) -> dict:
    try:
        if server_aware:
            order = await session.get_server_aware_order()
        else:
            order = session.get_order()
    finally:
        await session.close()
    return {"success": True, "order": order, "server_aware": server_aware}


async def _sync(session: ExperimentSession) -> dict:
    try:
        result = await session.sync_now()
    finally:
        await session.close()
    return {"success": not result.retry_needed, **result.to_dict()}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="aura",
        description="Aura experiment telemetry tools",
    )
    parser.add_argument("--config", required=True, help="Path to experiment YAML file")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("summary", help="Print the counterbalancing table")
    order_parser = subparsers.add_parser("order", help="Print this participant's condition order")
    order_parser.add_argument(
        "--server-aware", action="store_true",
        help="Drop conditions the server already recorded as started",
    )
    subparsers.add_parser("sync", help="Upload queued entries once")
    subparsers.add_parser("status", help="Print local queue statistics")

    args = parser.parse_args(argv)

    try:
        config = load_config_file(args.config)
        session = ExperimentSession()
        session.setup(config)

        with LogContext(experiment_id=config.experiment_id, user_id=config.user_id):
            if args.command == "summary":
                print(session.get_counterbalance_summary(), end="")
                return 0

            if args.command == "order":
                result = asyncio.run(_order(session, args.server_aware))
            elif args.command == "sync":
                result = asyncio.run(_sync(session))
            else:
                result = {"success": True, **session.store.get_stats()}

    except AuraError as e:
        print(json.dumps({"success": False, "error": e.message}))
        return 1

    print(json.dumps(result))
    return 0 if result["success"] else 1


if __name__ == "__main__":
    sys.exit(main())
