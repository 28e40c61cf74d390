#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from partner_portal.indexes import ENTITY_INDEXES
from partner_portal.ops.index_repair import find_stale_references
from partner_portal.ops.index_repair import rebuild_entity_indexes
from partner_portal.ops.index_repair import remove_stale_references
from partner_portal.portal import create_portal


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    portal = create_portal()
    try:
        if args.command == "rebuild":
            entity_types = args.entity_type or sorted(ENTITY_INDEXES)
            reports = [
                await rebuild_entity_indexes(portal.ctx, entity_type, dry_run=args.dry_run)
                for entity_type in entity_types
            ]
            return {"reports": reports, "failed": sum(len(r["failed"]) for r in reports)}
        if args.remove:
            stale = await remove_stale_references(portal.ctx, args.index_key, args.entity_type)
        else:
            stale = await find_stale_references(portal.ctx, args.index_key, args.entity_type)
        return {"index_key": args.index_key, "stale": stale, "removed": bool(args.remove), "failed": 0}
    finally:
        await portal.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Rebuild index memberships or list stale index references")
    sub = parser.add_subparsers(dest="command", required=True)

    rebuild = sub.add_parser("rebuild", help="re-derive index memberships from primary records")
    rebuild.add_argument(
        "--entity-type",
        action="append",
        choices=sorted(ENTITY_INDEXES),
        help="entity type to rebuild (repeatable); all types when omitted",
    )
    rebuild.add_argument("--dry-run", action="store_true", help="report without writing")

    stale = sub.add_parser("stale", help="list identifiers whose primary record is missing")
    stale.add_argument("--index-key", required=True, help="full key of the set or sorted set index")
    stale.add_argument("--entity-type", required=True, choices=sorted(ENTITY_INDEXES))
    stale.add_argument("--remove", action="store_true", help="also remove the stale identifiers")

    parser.add_argument("--log-level", default="INFO", help="logging level")
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")

    result = asyncio.run(_run(args))
    print(json.dumps(result, ensure_ascii=True, sort_keys=True, indent=2))
    return 0 if not result["failed"] else 2


if __name__ == "__main__":
    raise SystemExit(main())
