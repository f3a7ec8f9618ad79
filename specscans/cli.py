# ==============================================
# CLI: Command Line Entry Point
# ==============================================
#
# PURPOSE:
#   Operator front end for the scan service. Thin wiring only:
#   builds a ServiceContext from the environment, runs one
#   operation, prints a summary.
#
# COMMANDS:
# ---------
# 1. Create the motors database tables (idempotent):
#    python -m specscans.cli init-db
#
# 2. Add records from a JSON file (object or array):
#    python -m specscans.cli add scans.json
#
# 3. Edit records (each object names its target by sid or
#    spec_file + scan_number):
#    python -m specscans.cli edit edits.json
#
# 4. Search:
#    python -m specscans.cli search '{"beamline": "3a", "motors.samx": {"$gt": 0}}'
#    python -m specscans.cli search --idx 10 --limit 10
#
# Exit codes: 0 success, 1 partial batch / error, 2 usage.
#
# ==============================================

import argparse
import json
import sys

from specscans.batch import BatchStatus
from specscans.config import configure_logging, get_config
from specscans.errors import SpecScansError
from specscans.service import ScanService, ServiceContext
from specscans.storage.motor_store import MotorStore


def _read_body(path: str) -> bytes:
    if path == "-":
        return sys.stdin.buffer.read()
    with open(path, "rb") as f:
        return f.read()


def _print_batch(result) -> int:
    print(f"{result.status.value.upper()}: {len(result.records)}/{result.total} records stored")
    for record in result.records:
        print(f"  ✓ sid={record.get('sid')}")
    for error in result.errors:
        print(f"  ✗ record {error.index}: {error.error}")
    return 0 if result.status == BatchStatus.SUCCESS else 1


def cmd_init_db(args, config) -> int:
    with MotorStore.from_config(config.motors) as store:
        print(f"✓ Motors schema ready ({config.motors.db_type}), {store.count()} scans stored")
    return 0


def cmd_add(args, config) -> int:
    body = _read_body(args.file)
    with ServiceContext.from_config(config) as context:
        return _print_batch(ScanService(context).add(body))


def cmd_edit(args, config) -> int:
    body = _read_body(args.file)
    with ServiceContext.from_config(config) as context:
        return _print_batch(ScanService(context).edit(body))


def cmd_search(args, config) -> int:
    with ServiceContext.from_config(config) as context:
        records = ScanService(context).search(args.query, args.idx, args.limit)
    print(json.dumps(records, indent=2, default=str))
    print(f"{len(records)} records", file=sys.stderr)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="specscans",
        description="Store and search SPEC scan records across MongoDB and the motors database",
    )
    parser.add_argument("-v", "--verbose", action="count", default=None,
                        help="-v for info, -vv for debug (SQL statements)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create motors database tables")

    add = sub.add_parser("add", help="add records from a JSON file ('-' for stdin)")
    add.add_argument("file")

    edit = sub.add_parser("edit", help="edit records from a JSON file ('-' for stdin)")
    edit.add_argument("file")

    search = sub.add_parser("search", help="search records with a JSON filter")
    search.add_argument("query", nargs="?", default="{}")
    search.add_argument("--idx", type=int, default=0, help="documents to skip")
    search.add_argument("--limit", type=int, default=0, help="max documents (0 = no limit)")
    return parser


COMMANDS = {
    "init-db": cmd_init_db,
    "add": cmd_add,
    "edit": cmd_edit,
    "search": cmd_search,
}


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    verbose = args.verbose if args.verbose is not None else config.service.verbose
    configure_logging(verbose)
    try:
        return COMMANDS[args.command](args, config)
    except (SpecScansError, OSError) as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
