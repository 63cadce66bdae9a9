"""Command-line interface for hermes-sync.

Subcommands:

- ``sync``        -- clone or update every selected GitLab project.
- ``merge``       -- apply a scripted change to local repositories and open
  merge requests.
- ``diff``        -- list commits that differ between two remote branches.
- ``menu``        -- minimal interactive menu over the workflows above.
- ``init-config`` -- write a starter config file.

Exit status: 0 when every repository succeeded, 2 when some failed, 1 on
fatal errors (configuration, base directory, project discovery).
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import threading
from pathlib import Path

from . import __version__
from .bootstrap import connect_gitlab, load_runtime_config, load_settings
from .config import Config, resolve_base_dir
from .config_loader import ensure_config
from .core.async_utils import run_sync
from .core.errors import HermesError
from .core.inspector import RepositoryInspector
from .core.process import ProcessRunner
from .diff import collect_diffs, format_diff_summary, select_repositories
from .logger import DEFAULT_LOG_FILE, setup_logging
from .merge import ChangePropagator, ChangeSpec, MergeRequestPublisher
from .navigation import Event, Screen, parse_menu_choice, transition
from .sync import (
    AllBranches,
    FilterRule,
    ProgressChannel,
    ProjectFilter,
    RepositorySynchronizer,
    SingleBranch,
    SyncScheduler,
    discover_projects,
    format_progress,
    format_sync_report,
    report_to_json,
)
from .sync.reporter import format_merge_report, merge_report_to_json

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2


class FatalError(Exception):
    """Aborts the whole command with exit status 1."""


def _print_progress(event) -> None:
    print(format_progress(event), flush=True)


async def _consume(channel: ProgressChannel) -> None:
    async for event in channel:
        _print_progress(event)


async def _connect(config: Config):
    try:
        return await connect_gitlab(config)
    except RuntimeError as e:
        raise FatalError(str(e)) from e


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


async def sync_command(args: argparse.Namespace, config: Config) -> int:
    try:
        base_dir = resolve_base_dir(args.dir or config.sync_dir)
    except ValueError as e:
        raise FatalError(str(e)) from e

    client = await _connect(config)
    project_filter = ProjectFilter.from_strings(
        args.include, args.exclude, args.ssh_url
    )
    try:
        projects = await run_sync(discover_projects, client, project_filter)
    except HermesError as e:
        raise FatalError(str(e)) from e

    if not projects:
        print("No projects matched.", file=sys.stderr)
        return EXIT_OK

    cancel_event = threading.Event()
    runner = ProcessRunner(cancel_event=cancel_event)
    policy = SingleBranch(name=args.pull_branch) if args.pull_branch else AllBranches()
    synchronizer = RepositorySynchronizer(
        runner, RepositoryInspector(runner), base_dir, policy
    )
    scheduler = SyncScheduler(
        synchronizer,
        max_parallel=config.max_parallel,
        cancel_event=cancel_event,
    )

    channel = ProgressChannel()
    consumer = asyncio.create_task(_consume(channel))
    report = await scheduler.run(
        projects, channel=channel, timeout=config.sync_timeout
    )
    await consumer

    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    else:
        print()
        print(format_sync_report(report))
    return EXIT_OK if report.all_succeeded else EXIT_PARTIAL


# ---------------------------------------------------------------------------
# merge
# ---------------------------------------------------------------------------


async def merge_command(args: argparse.Namespace, config: Config) -> int:
    try:
        base_dir = resolve_base_dir(args.dir or config.files_dir)
        change = ChangeSpec(
            branch=args.branch,
            commands=args.script,
            commit_message=args.commit_message,
            target_branch=args.target_branch,
            title=args.title,
            description=args.description,
        )
    except ValueError as e:
        raise FatalError(str(e)) from e

    if not base_dir.is_dir():
        raise FatalError(f"Directory does not exist: {base_dir}")

    client = await _connect(config)
    runner = ProcessRunner()
    propagator = ChangePropagator(
        runner,
        RepositoryInspector(runner),
        MergeRequestPublisher(client),
        change,
        base_branches=config.base_branches,
    )

    channel = ProgressChannel()
    worker = asyncio.create_task(
        run_sync(
            propagator.run,
            base_dir,
            FilterRule.from_strings(args.include, args.exclude),
            channel,
        )
    )
    await _consume(channel)
    report = await worker

    if args.json:
        print(json.dumps(merge_report_to_json(report), indent=2))
    else:
        print()
        print(format_merge_report(report))
    return EXIT_OK if report.all_succeeded else EXIT_PARTIAL


# ---------------------------------------------------------------------------
# diff
# ---------------------------------------------------------------------------


async def diff_command(args: argparse.Namespace, config: Config) -> int:
    base_dir = args.basedir or config.files_dir
    branch_from = args.branch_from or config.diff_branch_from
    branch_to = args.branch_to or config.diff_branch_to
    if not base_dir:
        raise FatalError("No base directory: pass --basedir or set FILES_DIR")
    if not branch_from or not branch_to:
        raise FatalError(
            "Both branches are required: pass --branch-from/--branch-to "
            "or set DIFF_BRANCH_FROM/DIFF_BRANCH_TO"
        )

    try:
        repositories = select_repositories(base_dir, args.path)
    except HermesError as e:
        raise FatalError(str(e)) from e

    runner = ProcessRunner()
    summaries = await collect_diffs(
        RepositoryInspector(runner),
        repositories,
        branch_from,
        branch_to,
        base_dir=Path(config.files_dir) if config.files_dir else None,
        max_parallel=config.max_parallel,
    )

    for summary in summaries:
        if args.only_with_diff and not summary.has_changes:
            continue
        print(f"Repository: {summary.repository}")
        print(format_diff_summary(summary))
        print()

    return EXIT_PARTIAL if any(s.error for s in summaries) else EXIT_OK


# ---------------------------------------------------------------------------
# menu
# ---------------------------------------------------------------------------


def _ask(prompt: str, default: str | None = None) -> str | None:
    suffix = f" [{default}]" if default else ""
    answer = input(f"{prompt}{suffix}: ").strip()
    return answer or default


def _show_log_tail(log_file: str | None, lines: int = 20) -> None:
    if not log_file or not Path(log_file).exists():
        print("No log file to show.")
        return
    content = Path(log_file).read_text(encoding="utf-8", errors="replace")
    for line in content.splitlines()[-lines:]:
        print(line)


def menu_command(args: argparse.Namespace, config: Config) -> int:
    screen = Screen.MAIN_MENU
    status = EXIT_OK
    pending: argparse.Namespace | None = None

    while screen is not Screen.EXIT:
        if screen is Screen.MAIN_MENU:
            print("\n1) Sync projects\n2) Create merge requests\n3) Diff branches\n4) Show log\nq) Quit")
            event = parse_menu_choice(input("> "))
            if event is None:
                print("Unknown choice.")
                continue
        elif screen is Screen.SYNC_OPTIONS:
            pending = argparse.Namespace(
                dir=_ask("Sync directory", config.sync_dir or None),
                include=_ask("Include patterns (comma-separated)"),
                exclude=_ask("Exclude patterns (comma-separated)"),
                ssh_url=None,
                pull_branch=_ask("Branch to pull (empty for all branches)"),
                json=False,
            )
            event = Event.SUBMIT
        elif screen is Screen.MERGE_FORM:
            pending = argparse.Namespace(
                dir=_ask("Repositories directory", config.files_dir or None),
                include=_ask("Include patterns (comma-separated)"),
                exclude=_ask("Exclude patterns (comma-separated)"),
                branch=_ask("New branch name"),
                script=_ask("Commands (separated by ';')"),
                commit_message=_ask("Commit message"),
                target_branch=_ask("Target branch", config.base_branches[0]),
                title=_ask("Merge request title (optional)"),
                description=_ask("Merge request description (optional)"),
                json=False,
            )
            event = Event.SUBMIT
        elif screen is Screen.DIFF_FORM:
            pending = argparse.Namespace(
                basedir=_ask("Base directory", config.files_dir or None),
                path=_ask("Repository pattern (optional)"),
                branch_from=_ask("Branch from", config.diff_branch_from or None),
                branch_to=_ask("Branch to", config.diff_branch_to or None),
                only_with_diff=(_ask("Only show repositories with differences? (y/n)", "n") or "n").lower().startswith("y"),
            )
            event = Event.SUBMIT
        elif screen in (Screen.SYNC_PROGRESS, Screen.MERGE_PROGRESS, Screen.DIFF_RESULT):
            command = {
                Screen.SYNC_PROGRESS: sync_command,
                Screen.MERGE_PROGRESS: merge_command,
                Screen.DIFF_RESULT: diff_command,
            }[screen]
            try:
                status = asyncio.run(command(pending, config))
            except FatalError as e:
                print(f"ERROR: {e}", file=sys.stderr)
                status = EXIT_FATAL
            event = Event.BACK if screen is Screen.DIFF_RESULT else Event.FINISHED
        elif screen is Screen.LOGS:
            _show_log_tail(args.log_file)
            event = Event.BACK
        else:
            event = Event.QUIT

        screen = transition(screen, event)

    return status


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hermes",
        description="hermes - GitLab fleet sync and merge request automation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Clone or update every project whose name starts with team-
  hermes sync --include 'team-*' --exclude '*-deprecated'

  # Only pull the develop branch, 20 repositories at a time
  hermes sync --pull-branch develop --max-parallel 20

  # Bump a dependency everywhere under ~/work/services and open MRs
  hermes merge --dir ~/work/services --branch chore/bump-lib \\
      --command "sed -i s/lib==1.0/lib==1.1/ requirements.txt" \\
      --commit-message "Bump lib to 1.1" --target-branch develop

  # Compare production against develop in every backend repository
  hermes diff --basedir ~/work --path 'backend/*' \\
      --branch-from production --branch-to develop --only-with-diff

Connection settings come from GITLAB_BASE_URL / GITLAB_TOKEN, a .env file,
or .hermes/config.yml (see `hermes init-config`).
        """,
    )

    parser.add_argument(
        "--url",
        help="Override GitLab URL (takes precedence over GITLAB_BASE_URL env var and config files)",
    )
    parser.add_argument(
        "--token",
        help="Override access token (visible in process list -- prefer GITLAB_TOKEN env var)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--log-file",
        help=f"Also write logs to this file (silent mode default: {DEFAULT_LOG_FILE})",
    )
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        default="text",
        help="Log line format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"hermes version {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser(
        "sync", help="Clone or update GitLab projects"
    )
    sync_parser.add_argument(
        "--dir", help="Directory to clone into (default: SYNC_DIR or ./git-repos)"
    )
    sync_parser.add_argument(
        "--include", help="Comma-separated include patterns"
    )
    sync_parser.add_argument(
        "--exclude", help="Comma-separated exclude patterns"
    )
    sync_parser.add_argument(
        "--ssh-url", help="Only projects whose SSH URL contains this text"
    )
    sync_parser.add_argument(
        "--pull-branch",
        help="Only reconcile this branch (default: every remote branch)",
    )
    sync_parser.add_argument(
        "--max-parallel", type=int, help="Concurrent repositories (1-100)"
    )
    sync_parser.add_argument(
        "--timeout", type=float, help="Deadline for the whole run in seconds"
    )
    sync_parser.add_argument(
        "--silent",
        action="store_true",
        help="Log to file only; print progress and the report",
    )
    sync_parser.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )

    merge_parser = subparsers.add_parser(
        "merge", help="Apply a change to local repositories and open merge requests"
    )
    merge_parser.add_argument("--branch", required=True, help="Feature branch to create")
    merge_parser.add_argument(
        "--command",
        dest="script",
        required=True,
        help="Commands to run, separated by ';'",
    )
    merge_parser.add_argument("--commit-message", required=True)
    merge_parser.add_argument("--target-branch", required=True)
    merge_parser.add_argument("--title", help="Merge request title")
    merge_parser.add_argument("--description", help="Merge request description")
    merge_parser.add_argument(
        "--dir", help="Directory to walk (default: FILES_DIR or ./git-repos)"
    )
    merge_parser.add_argument(
        "--include", help="Comma-separated globs on the relative repository path"
    )
    merge_parser.add_argument(
        "--exclude", help="Comma-separated globs on the relative repository path"
    )
    merge_parser.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )

    diff_parser = subparsers.add_parser(
        "diff", help="Show commits that differ between two branches"
    )
    diff_parser.add_argument(
        "--basedir", help="Repository, or glob of repositories (default: FILES_DIR)"
    )
    diff_parser.add_argument(
        "--path", help="Glob under --basedir selecting repositories (e.g. 'backend/*')"
    )
    diff_parser.add_argument("--branch-from", help="Branch whose commits are excluded")
    diff_parser.add_argument("--branch-to", help="Branch whose extra commits are listed")
    diff_parser.add_argument(
        "--only-with-diff",
        action="store_true",
        help="Only show repositories that have differences",
    )

    subparsers.add_parser("menu", help="Interactive menu")
    subparsers.add_parser("init-config", help="Write a starter .hermes/config.yml")

    return parser


def _config_overrides(args: argparse.Namespace) -> dict:
    overrides: dict = {}
    if args.url:
        overrides["url"] = args.url
    if args.token:
        overrides["token"] = args.token
    if args.insecure:
        overrides["insecure"] = True
    if args.debug:
        overrides["debug"] = True
    if args.command == "sync":
        if args.dir:
            overrides["sync_dir"] = args.dir
        if args.max_parallel is not None:
            overrides["max_parallel"] = args.max_parallel
        if args.timeout is not None:
            overrides["sync_timeout"] = args.timeout
    elif args.command == "merge" and args.dir:
        overrides["files_dir"] = args.dir
    elif args.command == "diff" and args.basedir:
        overrides["files_dir"] = args.basedir
    return overrides


def run(argv: list[str] | None = None) -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "init-config":
        setup_logging(debug=args.debug, debug_format=args.log_format)
        path = ensure_config()
        print(f"Config file: {path}")
        sys.exit(EXIT_OK)

    try:
        settings = load_settings()
    except (OSError, ValueError) as e:
        print(f"ERROR: Could not load config file: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)

    silent = getattr(args, "silent", False)
    log_file = args.log_file or settings.logging.file
    setup_logging(
        mode="silent" if silent else "cli",
        debug=args.debug,
        log_file=log_file,
        debug_format=args.log_format,
    )
    if not args.debug and "LOG_LEVEL" not in os.environ:
        logging.getLogger().setLevel(
            getattr(logging, settings.logging.level.upper(), logging.INFO)
        )

    try:
        config = load_runtime_config(settings, _config_overrides(args))
    except RuntimeError:
        # Error already printed to stderr
        sys.exit(EXIT_FATAL)

    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command == "menu":
        args.log_file = log_file or (DEFAULT_LOG_FILE if silent else None)
        sys.exit(menu_command(args, config))

    command = {
        "sync": sync_command,
        "merge": merge_command,
        "diff": diff_command,
    }[args.command]

    try:
        status = asyncio.run(command(args, config))
    except FatalError as e:
        logger.error("%s", e)
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(EXIT_FATAL)

    sys.exit(status)


if __name__ == "__main__":
    run()
