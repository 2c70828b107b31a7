"""
zipzap CLI — frecency directory jumping

Commands:
    zipzap add  PATH                          — record a visit to PATH
    zipzap find FRAG... [--exclude P] [--list] — best match → stdout
    zipzap find -- -FRAG...                   — fragments that start with "-"
    zipzap db path                            — print the database path
    zipzap db import [FILE] [--dry-run]       — merge a legacy z data file
    zipzap stats                              — index metrics

Environment variables:
    ZIPZAP_DB       Path to SQLite database (default: $XDG_DATA_HOME/zipzap/db.sqlite)
    ZIPZAP_CONFIG   Path to JSON config (default: $XDG_CONFIG_HOME/zipzap/config.json)
    _Z_DATA         Legacy z data file for ``db import`` (default: ~/.z)

Precedence (invariant):
    CLI --flag  >  ZIPZAP_* env var  >  config file  >  compiled default

Exit codes:
    0  Success (including ignored paths and empty queries)
    1  Operational outcome (no match, bad args, missing import file)
    2  Storage or internal failure

--quiet silences stderr only; exit codes are unchanged, so shell hooks can
run ``zipzap -q add "$PWD" &`` without noise.

Author: zipzap contributors
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Optional

from zipzap.config import (
    ValidationError,
    ZipzapConfig,
    default_config_path,
    default_db_path,
    load_config,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defensive env parsing (never crash on bad export)
# ---------------------------------------------------------------------------


def _env_str(name: str, default: str) -> str:
    """Parse string env var with fallback."""
    return os.environ.get(name) or default


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


def _resolve_config(args: Optional[argparse.Namespace] = None) -> ZipzapConfig:
    """Resolve config: CLI --config > ZIPZAP_CONFIG > per-user file > defaults."""
    path = getattr(args, "config", None) if args else None
    if not path:
        path = _env_str("ZIPZAP_CONFIG", "")
    if not path:
        path = default_config_path()
        if not os.path.exists(path):
            return ZipzapConfig()
    try:
        return load_config(path, strict=True)
    except ValidationError as e:
        _warn(f"{e}; using defaults")
        return ZipzapConfig()


def _resolve_db(
    args: Optional[argparse.Namespace] = None,
    config: Optional[ZipzapConfig] = None,
) -> str:
    """Resolve database path: CLI --db > ZIPZAP_DB > config > XDG default."""
    if args and getattr(args, "db", None):
        return args.db
    env = _env_str("ZIPZAP_DB", "")
    if env:
        return env
    if config is not None and config.store.db_path:
        return os.path.expanduser(config.store.db_path)
    return default_db_path()


# ---------------------------------------------------------------------------
# Stderr helpers (respect --quiet)
# ---------------------------------------------------------------------------

_quiet = False


def _info(msg: str) -> None:
    """Print progress to stderr (suppressed by --quiet)."""
    if not _quiet:
        print(msg, file=sys.stderr)


def _warn(msg: str) -> None:
    """Print an error to stderr (suppressed by --quiet; exit code still set)."""
    if not _quiet:
        print(msg, file=sys.stderr)


def _is_ignored(path: str) -> bool:
    """Home and the filesystem root are never worth jumping to."""
    home = os.path.realpath(os.path.expanduser("~"))
    return path == home or os.path.dirname(path) == path


# ===========================================================================
# Command: add
# ===========================================================================


def cmd_add(args: argparse.Namespace) -> None:
    """Record a visit to a directory."""
    from zipzap.ops import record_visit

    path = os.path.realpath(args.path)
    if not os.path.isdir(path):
        _warn(f"Not a directory: {path}")
        sys.exit(1)
    if _is_ignored(path):
        logger.debug(f"ignored: {path}")
        return

    config = _resolve_config(args)
    record_visit(_resolve_db(args, config), path, config=config)


# ===========================================================================
# Command: find
# ===========================================================================


def cmd_find(args: argparse.Namespace) -> None:
    """Print the best match for the query fragments."""
    from zipzap.ops import find_candidates, find_path

    fragments = [f for f in args.fragments if f]
    if not fragments:
        return

    config = _resolve_config(args)
    db_path = _resolve_db(args, config)
    # Stored paths are realpaths (see cmd_add)
    exclude = os.path.realpath(args.exclude) if args.exclude else None

    if args.list:
        ranked = find_candidates(
            db_path, fragments, exclude=exclude, config=config,
        )
        if not ranked:
            _warn(f"No match for: {' '.join(fragments)}")
            sys.exit(1)
        if getattr(args, "json", False):
            out = [{"score": s, **e.to_dict()} for s, e in ranked]
            print(json.dumps(out, indent=2))
        else:
            for s, e in reversed(ranked):
                print(f"{s:<10.1f} {e.path}")
        return

    target = find_path(db_path, fragments, exclude=exclude, config=config)
    if target is None:
        _warn(f"No match for: {' '.join(fragments)}")
        sys.exit(1)
    print(target)


# ===========================================================================
# Command: db path / db import
# ===========================================================================


def cmd_db_path(args: argparse.Namespace) -> None:
    """Print the resolved database path."""
    print(_resolve_db(args, _resolve_config(args)))


def cmd_db_import(args: argparse.Namespace) -> None:
    """Merge a legacy z data file into the index."""
    from zipzap.legacy_import import default_legacy_path, import_legacy

    source = args.file or default_legacy_path()
    if not os.path.isfile(source):
        _warn(f"Legacy data file not found: {source}")
        sys.exit(1)

    config = _resolve_config(args)
    result = import_legacy(
        _resolve_db(args, config), source,
        dry_run=args.dry_run, config=config, log=_info,
    )
    if getattr(args, "json", False):
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"imported {result.imported} rows")


# ===========================================================================
# Command: stats
# ===========================================================================


def cmd_stats(args: argparse.Namespace) -> None:
    """Show index statistics."""
    from zipzap.store import PathStore

    config = _resolve_config(args)
    with PathStore.from_config(
        _resolve_db(args, config), config.store, config.scoring,
    ) as store:
        st = store.stats()

    if getattr(args, "json", False):
        print(json.dumps(st, indent=2))
        return

    print(f"Database:      {st['db_path']}")
    print(f"Schema:        v{st['schema_version']}")
    print(f"Entries:       {st['total_entries']}")
    print(f"Total rank:    {st['total_rank']:.1f} (aging above {st['aging_ceiling']:.0f})")
    print(f"Last access:   {st['last_access'] or '-'}")


# ===========================================================================
# Entry point
# ===========================================================================


def main() -> None:
    """CLI entry point: zipzap <command> [args]."""
    global _quiet
    from zipzap.store import StorageError

    # SUPPRESS defaults prevent subparser defaults from overriding
    # values parsed at the main-parser level (argparse parents quirk).
    _common = argparse.ArgumentParser(add_help=False)
    _common.add_argument(
        "--db", default=argparse.SUPPRESS,
        help="Path to SQLite database (default: ZIPZAP_DB or XDG data dir)",
    )
    _common.add_argument(
        "--config", default=argparse.SUPPRESS,
        help="Path to JSON config (default: ZIPZAP_CONFIG or XDG config dir)",
    )
    _common.add_argument(
        "--quiet", "-q", action="store_true", default=argparse.SUPPRESS,
        help="Do not print errors on failure (exit code is still set)",
    )
    _common.add_argument(
        "--json", action="store_true", default=argparse.SUPPRESS,
        help="Machine-readable JSON output (stats, find --list, db import)",
    )
    _common.add_argument(
        "-v", "--verbose", action="store_true", default=argparse.SUPPRESS,
        help="Enable verbose logging",
    )

    parser = argparse.ArgumentParser(
        prog="zipzap",
        description="zipzap — jump to frequently and recently used directories",
        parents=[_common],
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    # -- add ---------------------------------------------------------------
    p_add = sub.add_parser("add", parents=[_common], help="Record a visit to a directory")
    p_add.add_argument("path", help="Directory that was visited")
    p_add.set_defaults(func=cmd_add)

    # -- find --------------------------------------------------------------
    p_find = sub.add_parser("find", parents=[_common], help="Print the best match for a query")
    p_find.add_argument(
        "fragments", nargs="*",
        help="Ordered, case-insensitive fragments (use -- before fragments starting with -)",
    )
    p_find.add_argument(
        "--exclude", default=None,
        help="Path to skip when another candidate exists (usually $PWD)",
    )
    p_find.add_argument("--list", action="store_true", help="List all candidates with scores")
    p_find.set_defaults(func=cmd_find)

    # -- db ----------------------------------------------------------------
    p_db = sub.add_parser("db", parents=[_common], help="Database manipulation")
    db_sub = p_db.add_subparsers(dest="db_command", help="Database commands")

    p_db_path = db_sub.add_parser("path", parents=[_common], help="Print the database path")
    p_db_path.set_defaults(func=cmd_db_path)

    p_db_import = db_sub.add_parser(
        "import", parents=[_common],
        help="Merge a legacy z data file (newer timestamps win)",
    )
    p_db_import.add_argument(
        "file", nargs="?", default=None,
        help="Legacy data file (default: _Z_DATA or ~/.z)",
    )
    p_db_import.add_argument("--dry-run", action="store_true", help="Parse and count only")
    p_db_import.set_defaults(func=cmd_db_import)

    # -- stats -------------------------------------------------------------
    p_stats = sub.add_parser("stats", parents=[_common], help="Index statistics")
    p_stats.set_defaults(func=cmd_stats)

    # -- Parse and dispatch ------------------------------------------------
    args = parser.parse_args()

    _quiet = getattr(args, "quiet", False)

    if getattr(args, "verbose", False):
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(name)s %(levelname)s %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)

    if not hasattr(args, "func"):
        if not _quiet:
            parser.print_help(sys.stderr)
        sys.exit(1)

    try:
        args.func(args)
    except BrokenPipeError:
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        sys.exit(0)
    except KeyboardInterrupt:
        sys.exit(0)
    except StorageError as e:
        _warn(f"Storage error: {e}")
        sys.exit(2)
    except ValueError as e:
        _warn(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        _warn(f"Internal error: {e}")
        if getattr(args, "verbose", False):
            import traceback
            traceback.print_exc(file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
