"""
tritrack command line.

Usage:
    tritrack anchor 2025-06-15 --weeks 16
    tritrack merge week1-4.json week5-8.json --race-date 2025-06-15 --weeks 16 -o plan.yaml
    tritrack serve --port 3001
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from tritrack.atomic_write import atomic_write
from tritrack.config_loader import get_config
from tritrack.json_extract import JSONExtractionError
from tritrack.logger import get_logger
from tritrack.plan_dates import (
    InvalidArgument,
    anchor_workouts,
    build_week_calendar,
    compute_start_date,
    format_week_calendar,
    parse_date,
)
from tritrack.plan_service import PlanService, load_json_source, resolve_start_date
from tritrack.schedule_merge import EmptyResult, MalformedWorkout, plan_summary


def cmd_anchor(args) -> int:
    """Print Week 1 Monday and the week calendar for a race date."""
    start = compute_start_date(args.race_date, args.weeks)
    race = parse_date(args.race_date, 'race_date').isoformat()

    print(f"Race Date: {race}")
    print(f"Plan Duration: {args.weeks} weeks")
    print(f"Plan Start: {start.isoformat()} (Week 1 Monday)")
    print()
    print(format_week_calendar(build_week_calendar(race, args.weeks), race))
    return 0


def _load_source(path: Path) -> dict:
    with open(path, 'r') as f:
        text = f.read()
    return load_json_source(text)


def cmd_merge(args) -> int:
    """Merge JSON schedule files into one plan and write it as YAML."""
    log = get_logger()
    log.header(f"Merging {len(args.files)} schedule file(s)")

    sources = [_load_source(Path(p)) for p in args.files]
    start_date = resolve_start_date(args.race_date, args.weeks, sources, args.start_date)
    if start_date:
        sources = [dict(s, workouts=anchor_workouts(s['workouts'], start_date)) for s in sources]

    service = PlanService(db=None)
    plan = service.build_plan(sources, args.name, args.race_date, args.weeks, start_date)
    if not plan.workouts:
        raise EmptyResult(f"No workouts found in {len(sources)} file(s)")

    counts = ', '.join(f"{d}={n}" for d, n in sorted(plan_summary(plan).items()))
    log.success(f"Merged {len(plan.workouts)} workouts ({counts})")

    output = yaml.dump(plan.to_dict(), default_flow_style=False, sort_keys=False)
    if args.output:
        with atomic_write(Path(args.output)) as f:
            f.write(output)
        log.info(f"Saved to: {args.output}")
    else:
        sys.stdout.write(output)
    return 0


def cmd_serve(args) -> int:
    from tritrack.api.app import run
    run(port=args.port, debug=args.debug)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='tritrack', description='Triathlon plan tools')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    parser.add_argument('--json-logs', action='store_true', help='Structured JSON log output')
    parser.add_argument('--log-file', help='Also write JSON logs to this file')
    sub = parser.add_subparsers(dest='command', required=True)

    anchor = sub.add_parser('anchor', help='Compute Week 1 Monday from a race date')
    anchor.add_argument('race_date', help='Race date (YYYY-MM-DD)')
    anchor.add_argument('--weeks', type=int, required=True, help='Plan length in weeks')
    anchor.set_defaults(func=cmd_anchor)

    merge = sub.add_parser('merge', help='Merge JSON schedules into one plan')
    merge.add_argument('files', nargs='+', help='JSON files: workout lists or {"workouts": [...]}')
    merge.add_argument('--race-date', help='Race date (YYYY-MM-DD)')
    merge.add_argument('--weeks', type=int, help='Plan length in weeks')
    merge.add_argument('--start-date', help='Week 1 Monday, when no race date is given')
    merge.add_argument('--name', default='', help='Plan name')
    merge.add_argument('-o', '--output', help='Write YAML here instead of stdout')
    merge.set_defaults(func=cmd_merge)

    serve = sub.add_parser('serve', help='Run the API server')
    serve.add_argument('--port', type=int, default=None)
    serve.add_argument('--debug', action='store_true')
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    log = get_logger()
    log.set_level('DEBUG' if args.verbose else get_config().get('logging.level', 'INFO'))
    if args.json_logs:
        log.set_json_mode(True)
    if args.log_file:
        log.add_file_handler(Path(args.log_file))

    try:
        return args.func(args)
    except (InvalidArgument, MalformedWorkout, JSONExtractionError) as e:
        log.error(str(e))
        return 1
    except EmptyResult as e:
        log.warning(str(e))
        return 2
    except OSError as e:
        log.error(f"Could not read or write file: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
