#!/usr/bin/env python3
"""
Recompute a project's costs, pooled allocations and margins.

Usage:
    python3 scripts/recompute_project.py --project-id <uuid>
    python3 scripts/recompute_project.py --project-id <uuid> --context it --year 2025
    python3 scripts/recompute_project.py --project-id <uuid> --breakdown

Without --context the full pass runs (step costs, every enabled pooled
context, deliverable margins).  With --context only that pooled context is
reset and re-allocated.  --year alone recomputes the step costs of that
year.  --breakdown prints the reporting payload after the
recompute.  Everything runs in one transaction; a failure rolls it all back.

Exit status: 0 on success, 1 on usage or connection errors, 2 when the
recompute aborts on a costing error (the error code is printed).
"""

import argparse
import json
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Recompute project costs and margins.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            "  python3 scripts/recompute_project.py --project-id 1b2c...\n"
            "  python3 scripts/recompute_project.py --project-id 1b2c... --context it --year 2025\n"
        ),
    )
    parser.add_argument("--project-id", type=str, required=True, help="Project UUID")
    parser.add_argument("--year", type=int, default=None, help="Calendar year (default: all years)")
    parser.add_argument(
        "--context",
        choices=["it", "travel", "subcontract"],
        default=None,
        help="Recompute only this pooled cost context",
    )
    parser.add_argument(
        "--database-url", type=str, default=None,
        help="Database URL (default: from the configuration set)",
    )
    parser.add_argument(
        "--config-set", type=str, default="default",
        help="Configuration set name (default: default)",
    )
    parser.add_argument(
        "--breakdown", action="store_true",
        help="Print the project breakdown after the recompute",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        project_id = UUID(args.project_id)
    except ValueError as exc:
        print(f"  ERROR: Invalid UUID: {exc}", file=sys.stderr)
        return 1

    from costing_config import get_active_config
    from costing_kernel.db.engine import init_engine_from_url, session_scope
    from costing_kernel.exceptions import CostingError
    from costing_kernel.logging_config import configure_logging
    from costing_services import RecomputeService

    config = get_active_config(args.config_set)
    configure_logging(level=config.logging.level)

    init_engine_from_url(
        args.database_url or config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )

    try:
        with session_scope() as session:
            service = RecomputeService(session, config)
            if args.context is not None:
                summary = service.recompute_pooled_costs(
                    project_id, year=args.year, contexts=[args.context]
                )
            elif args.year is not None:
                summary = service.recompute_step_costs(project_id, year=args.year)
            else:
                summary = service.recompute_project(project_id)

            output = {"recompute": summary.to_dict()}
            if args.breakdown:
                output["breakdown"] = service.build_breakdown(project_id).to_dict()
    except CostingError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 2

    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
