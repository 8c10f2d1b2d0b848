"""CLI for the matching API.

Usage:
    python -m propmatch status                       Cache status vs live source counts
    python -m propmatch sync [properties|buyers|matches|all]
                                                     Rebuild cache snapshots
    python -m propmatch get KEY                      Print a cached snapshot
    python -m propmatch aggregate buyers|properties [--limit N] [--offset C] [--sort]
                                                     Print one aggregated page
    python -m propmatch clear-matches --yes          Delete every match record
    python -m propmatch run-matching [--contact-id C | --property-code P] [--min-score N] [--refresh-all]
                                                     Score buyers against properties and write matches
    python -m propmatch serve [--host H] [--port P]  Run the API server
"""

import argparse
import json
import sys

from .config import Config, load_settings
from .utils.logging import configure_from_config, get_logger

logger = get_logger('cli')


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _store(config):
    from .store import AirtableClient
    return AirtableClient.from_config(config)


def cmd_status(config, args) -> int:
    """Show cache status."""
    from .cache import COLLECTIONS, NEW_AVAILABLE_KEYS, CacheCoordinator

    status = CacheCoordinator.from_config(_store(config), config).status()

    print("=== Cache Status ===\n")
    for key in COLLECTIONS:
        meta = status[key]
        flag = "✓" if meta['isValid'] else "✗"
        print(f"  {flag} {key}: {meta['recordCount']} cached / {meta['sourceCount']} live "
              f"(v{meta['version']}, synced {meta['lastSynced'] or 'never'})")
        if status[NEW_AVAILABLE_KEYS[key]]:
            print(f"      {status[NEW_AVAILABLE_KEYS[key]]} new records available")

    print(f"\nStale: {'yes' if status['isStale'] else 'no'}")
    return 0


def cmd_sync(config, args) -> int:
    """Rebuild cache snapshots."""
    from .cache import CacheCoordinator

    results = CacheCoordinator.from_config(_store(config), config).sync(args.cache_key)
    for key, result in results.items():
        print(f"  ✓ {key}: {result['recordCount']} records (v{result['version']})")
    return 0


def cmd_get(config, args) -> int:
    """Print a cached snapshot."""
    from .cache import CacheCoordinator
    from .exceptions import CacheNotFound

    try:
        _print_json(CacheCoordinator.from_config(_store(config), config).get_cached_data(args.cache_key))
    except CacheNotFound as e:
        print(str(e))
        return 1
    return 0


def cmd_aggregate(config, args) -> int:
    """Print one aggregated page."""
    from .assembler import aggregate
    from .resolver import Resolver

    resolver = Resolver(_store(config), tables=config.TABLES)
    _print_json(aggregate(resolver, args.type, limit=args.limit, offset=args.offset, sort=args.sort))
    return 0


def cmd_clear_matches(config, args) -> int:
    """Delete every match record."""
    from .matches import clear_all_matches

    if not args.yes:
        print("Refusing to delete matches without --yes")
        return 1

    deleted = clear_all_matches(_store(config), config.TABLES.matches, batch_size=config.DELETE_BATCH_SIZE)
    print(f"Deleted {deleted} matches")
    return 0


def cmd_run_matching(config, args) -> int:
    """Score buyers against properties and write matches."""
    from .matches import MatchRunner, validate_min_score

    min_score = config.MIN_MATCH_SCORE if args.min_score is None else validate_min_score(args.min_score)
    runner = MatchRunner(_store(config), tables=config.TABLES, min_score=min_score)

    if args.contact_id:
        outcome = runner.run_for_buyer(args.contact_id)
        if outcome is None:
            print(f"Buyer not found: {args.contact_id}")
            return 1
        buyer, stats = outcome
        print(f"Matched {buyer.full_name or args.contact_id}")
    elif args.property_code:
        outcome = runner.run_for_property(args.property_code)
        if outcome is None:
            print(f"Property not found: {args.property_code}")
            return 1
        _, stats = outcome
        print(f"Matched property {args.property_code}")
    else:
        stats = runner.run_all(refresh_all=args.refresh_all)

    print(f"  Created:  {stats.matches_created}")
    print(f"  Updated:  {stats.matches_updated}")
    print(f"  Skipped:  {stats.duplicates_skipped}")
    print(f"  Priority: {stats.priority_matches}")
    return 0


def cmd_serve(config, args) -> int:
    """Run the API server (development; use gunicorn in production)."""
    from .api import create_app

    app = create_app(config)
    app.run(host=args.host or config.API_HOST, port=args.port or config.API_PORT,
            debug=args.debug, use_reloader=False)
    return 0


COMMANDS = {
    'status': cmd_status,
    'sync': cmd_sync,
    'get': cmd_get,
    'aggregate': cmd_aggregate,
    'clear-matches': cmd_clear_matches,
    'run-matching': cmd_run_matching,
    'serve': cmd_serve,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='propmatch', description='Buyer-property matching API tools')
    parser.add_argument('--config', help='Path to YAML config file')
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('status', help='Show cache status')

    sync = subparsers.add_parser('sync', help='Rebuild cache snapshots')
    sync.add_argument('cache_key', nargs='?', default='all',
                      choices=['properties', 'buyers', 'matches', 'all'])

    get = subparsers.add_parser('get', help='Print a cached snapshot')
    get.add_argument('cache_key')

    agg = subparsers.add_parser('aggregate', help='Print one aggregated page')
    agg.add_argument('type', choices=['buyers', 'properties'])
    agg.add_argument('--limit', type=int, default=50)
    agg.add_argument('--offset')
    agg.add_argument('--sort', action='store_true', help='Order matches by score')

    clear = subparsers.add_parser('clear-matches', help='Delete every match record')
    clear.add_argument('--yes', action='store_true', help='Confirm deletion')

    run = subparsers.add_parser('run-matching', help='Score buyers against properties and write matches')
    target = run.add_mutually_exclusive_group()
    target.add_argument('--contact-id', help='Only this buyer')
    target.add_argument('--property-code', help='Only this property')
    run.add_argument('--min-score', type=float, help='Minimum score to write (default from config)')
    run.add_argument('--refresh-all', action='store_true', help='Rescore pairs that already have a match')

    serve = subparsers.add_parser('serve', help='Run the API server')
    serve.add_argument('--host')
    serve.add_argument('--port', type=int)
    serve.add_argument('--debug', action='store_true')

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    config = Config(load_settings(config_path=args.config))
    configure_from_config(config)

    errors = config.validate()
    if errors:
        print("Configuration errors:")
        for e in errors:
            print(f"  - {e}")
        return 1

    try:
        return COMMANDS[args.command](config, args)
    except Exception as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
