#!/usr/bin/env python3
"""Butlercraft command line.

Usage:
    butlercraft [--config MANIFEST] apply [--dry-run] [--kind KIND] [--name NAME]
    butlercraft [--config MANIFEST] probe KIND NAME
    butlercraft changes [--kind KIND] [--name NAME] [--limit N]
    butlercraft [--config MANIFEST] bootstrap [--force]

Environment variables:
    BUTLERCRAFT_CONFIG      Manifest path (default: ./configs/jenkins.yaml)
    JENKINS_PASSWORD        Password for the configured username
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from .config.inventory import ResourceInventory
from .converge import Reconciler, summarize_results
from .converge.errors import ConvergeError
from .converge.schema import ActionKind, ResourceKind
from .jenkins.base import ExecutorError
from .jenkins.bootstrap import ensure_cli_jar
from .utils.audit_log import get_recent_changes, setup_audit_logging
from .utils.logging_config import setup_logging, timed_section_sync

logger = logging.getLogger(__name__)


def load_inventory(config_path: Optional[str]) -> ResourceInventory:
    with timed_section_sync("load_manifest", target=config_path):
        return ResourceInventory(config_path)


async def cmd_apply(args: argparse.Namespace) -> int:
    inventory = load_inventory(args.config)
    resources = inventory.get_resources(kind=args.kind, name=args.name)
    if not resources:
        logger.error("No matching resources declared")
        return 1

    reconciler = Reconciler(
        inventory.get_executor(),
        timeout=args.timeout if args.timeout is not None else inventory.server.timeout,
    )
    results = await reconciler.reconcile_all(
        resources,
        dry_run=args.dry_run,
        max_concurrency=args.jobs,
        action=args.action,
    )

    if args.json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        print(summarize_results(results))

    return 0 if all(r.success for r in results) else 1


async def cmd_probe(args: argparse.Namespace) -> int:
    inventory = load_inventory(args.config)
    reconciler = Reconciler(inventory.get_executor(), timeout=inventory.server.timeout)
    try:
        current = await reconciler.probe(ResourceKind(args.kind), args.name)
    except ConvergeError as e:
        logger.error(f"Probe failed: {e}")
        return 1

    print(json.dumps(current.to_dict(), indent=2))
    return 0


def cmd_changes(args: argparse.Namespace) -> int:
    records = get_recent_changes(
        log_file=args.log_file,
        kind=args.kind,
        name=args.name,
        limit=args.limit,
    )
    for record in records:
        status = "OK" if record.success else "FAIL"
        prefix = "DRY-RUN " if record.dry_run else ""
        print(
            f"{record.timestamp} {record.user:10s} {prefix}{record.action:8s} "
            f"{record.kind}/{record.name} {status}"
        )
        if record.error:
            print(f"    error: {record.error}")
    return 0


async def cmd_bootstrap(args: argparse.Namespace) -> int:
    inventory = load_inventory(args.config)
    try:
        path = await ensure_cli_jar(inventory.server, force=args.force)
    except ExecutorError as e:
        logger.error(str(e))
        return 1
    print(path)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="butlercraft",
        description="Converge Jenkins agents, nodes, and jobs onto a YAML manifest",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Preview every change
    butlercraft apply --dry-run

    # Converge one job
    butlercraft apply --kind job --name build-x

    # Take an agent offline
    butlercraft apply --kind slave --name agent-1 --action offline
""",
    )
    parser.add_argument(
        "-c", "--config",
        help="Manifest file (default: $BUTLERCRAFT_CONFIG or ./configs/jenkins.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    kinds = [k.value for k in ResourceKind]

    apply = sub.add_parser("apply", help="Reconcile declared resources")
    apply.add_argument("--dry-run", action="store_true", help="Report decisions without changing anything")
    apply.add_argument("--kind", choices=kinds, help="Only resources of this kind")
    apply.add_argument("--name", help="Only resources with this name")
    apply.add_argument(
        "--action",
        choices=[a.value for a in ActionKind if a != ActionKind.NONE],
        help="Override the declared intent",
    )
    apply.add_argument("--timeout", type=float, help="Per-command timeout in seconds")
    apply.add_argument("-j", "--jobs", type=int, default=1, help="Concurrent passes (default: 1)")
    apply.add_argument("--json", action="store_true", help="Print results as JSON")

    probe = sub.add_parser("probe", help="Show the live state of one object")
    probe.add_argument("kind", choices=kinds)
    probe.add_argument("name")

    changes = sub.add_parser("changes", help="Show recent audited decisions")
    changes.add_argument("--kind", choices=kinds)
    changes.add_argument("--name")
    changes.add_argument("--limit", type=int, default=20)
    changes.add_argument("--log-file", help="Audit log (default: ~/.butlercraft/audit.log)")

    bootstrap = sub.add_parser("bootstrap", help="Download jenkins-cli.jar from the server")
    bootstrap.add_argument("--force", action="store_true", help="Download even if present")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the butlercraft CLI."""
    args = build_parser().parse_args(argv)

    setup_logging()
    if args.verbose:
        for handler in logging.getLogger("mcp_jenkins").handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                handler.setLevel(logging.DEBUG)
    setup_audit_logging()

    try:
        if args.command == "apply":
            return asyncio.run(cmd_apply(args))
        if args.command == "probe":
            return asyncio.run(cmd_probe(args))
        if args.command == "changes":
            return cmd_changes(args)
        return asyncio.run(cmd_bootstrap(args))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except (FileNotFoundError, KeyError, ConvergeError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
