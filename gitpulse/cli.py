"""
CLI -- Command interface for one-shot scans and configuration

Commands:
    gitpulse scan [DIR ...] [--json] [--depth N]
    gitpulse config
    gitpulse config set KEY VALUE [--user]
    gitpulse config get KEY

Each command keeps its parser definition next to its handler:
register_<name>(subparsers) builds the parser, handle_<name>(args) runs it.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import orjson

from . import __version__
from .config import ConfigManager, expand_home
from .core.cache import RepoView
from .orchestrator import ScanOrchestrator
from .orchestrator.config import OrchestratorConfig


logger = logging.getLogger(__name__)


# =============================================================================
# scan
# =============================================================================

def register_scan(subparsers) -> None:
    p = subparsers.add_parser('scan', help='Scan repositories once and print their status')
    p.add_argument('directories', nargs='*', metavar='DIR',
                   help='Directories to scan (default: configured watch directories)')
    p.add_argument('--json', action='store_true',
                   help='Print JSON instead of a table')
    p.add_argument('--depth', type=int, metavar='N',
                   help='Maximum directory depth (default: scan.max_scan_depth)')


def handle_scan(args) -> int:
    manager = ConfigManager(config_path=args.config)
    config = manager.load()

    if args.directories:
        config.scan.watch_directories = [expand_home(d) for d in args.directories]
    if args.depth is not None:
        config.scan.max_scan_depth = args.depth

    error = config.validate()
    if error:
        print(f"Error: {error}", file=sys.stderr)
        return 2

    for directory in config.scan.missing_directories:
        logger.warning("Watch directory not found: %s", directory)

    try:
        engine_config = OrchestratorConfig.from_env()
        orchestrator = ScanOrchestrator.from_config(config, config=engine_config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        report = orchestrator.run_once()
        views = list(orchestrator.snapshot().values())
    finally:
        orchestrator.shutdown()

    if args.json:
        payload = {
            "repos": [v.to_dict() for v in views],
            "report": report.to_dict() if report else None,
        }
        sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())
        sys.stdout.write("\n")
    else:
        print(format_table(views, show_clean=config.display.show_clean))

    return 1 if any(v.has_error for v in views) else 0


def format_table(views: List[RepoView], show_clean: bool = True) -> str:
    """Render repository views as a plain-text table, most urgent first."""
    rows = []
    for view in sorted(views, key=_sort_key):
        if not show_clean and view.snapshot is not None and not view.snapshot.needs_attention \
                and not view.has_error:
            continue
        rows.append(_row(view))

    if not rows:
        return "No repositories found." if not views else "All repositories clean."

    headers = ("REPO", "BRANCH", "CHANGES", "AHEAD", "BEHIND", "STASH", "")
    widths = [max(len(h), *(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

    lines = ["  ".join(h.ljust(w) for h, w in zip(headers, widths)).rstrip()]
    for row in rows:
        lines.append("  ".join(c.ljust(w) for c, w in zip(row, widths)).rstrip())
    return "\n".join(lines)


def _sort_key(view: RepoView):
    urgency = view.snapshot.urgency if view.snapshot is not None else 0
    return (-urgency, view.name.lower())


def _row(view: RepoView) -> tuple:
    note = f"error: {view.last_error}" if view.has_error else ""
    if view.snapshot is None:
        return (view.name, "?", "-", "-", "-", "-", note)

    local = view.snapshot.local
    remote = view.snapshot.remote
    branch = f"({local.branch})" if local.is_detached else local.branch

    if remote.has_upstream:
        ahead, behind = str(remote.ahead), str(remote.behind)
    else:
        ahead = behind = "-"
        if not note:
            note = "no upstream" if remote.has_remote else "no remote"

    return (view.name, branch, str(local.uncommitted_count), ahead, behind,
            str(local.stash_count), note)


# =============================================================================
# config
# =============================================================================

def register_config(subparsers) -> None:
    p = subparsers.add_parser('config', help='View or set configuration')
    actions = p.add_subparsers(dest='config_action')

    p_set = actions.add_parser('set', help='Set a value (e.g., scan.remote_ttl 10)')
    p_set.add_argument('key')
    p_set.add_argument('value')
    p_set.add_argument('--user', action='store_true',
                       help='Apply to user config instead of project')

    p_get = actions.add_parser('get', help='Print one value')
    p_get.add_argument('key')


def handle_config(args) -> int:
    manager = ConfigManager(config_path=args.config)
    action = getattr(args, 'config_action', None)

    if action == 'set':
        scope = "user" if args.user else "project"
        error = manager.set(args.key, args.value, scope)
        if error:
            print(f"Error: {error}", file=sys.stderr)
            return 2
        print(f"Set {args.key} = {manager.get(args.key)} ({scope})")
        return 0

    if action == 'get':
        value = manager.get(args.key)
        if value is None:
            print(f"Error: Unknown key: {args.key}", file=sys.stderr)
            return 2
        print(value)
        return 0

    print(manager.display())
    return 0


# Command registry: name -> (register, handle)
COMMANDS: Dict[str, tuple] = {
    'scan': (register_scan, handle_scan),
    'config': (register_config, handle_config),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='gitpulse',
        description="gitpulse -- Status of every git repository you work in",
    )
    parser.add_argument('--config', '-c', type=Path, metavar='PATH',
                        help='Config file (default: ./.gitpulse.yaml)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Debug logging')
    parser.add_argument('--version', '-V', action='version',
                        version=f'gitpulse {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Commands')
    for register, _ in COMMANDS.values():
        register(subparsers)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the gitpulse CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    _, handle = COMMANDS[args.command]
    return handle(args)


if __name__ == '__main__':
    sys.exit(main())
