from __future__ import annotations

import argparse
from pathlib import Path
import sys

from colemencopy.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_WAIT_SECONDS,
    MoveMode,
    RetryPolicy,
    RunOptions,
    SyncPolicy,
    load_job,
    save_job,
    validate_options,
)
from colemencopy.errors import ArgumentError
from colemencopy.models import RunResult, RunStatus
from colemencopy.reporting import configure_logging, format_options
from colemencopy.run_service import run_job_file, run_sync


EXIT_SUCCESS = 0
EXIT_RUNTIME_ERROR = 1
EXIT_PARTIAL_FAILURES = 2
EXIT_CANCELLED = 3
EXIT_INVALID_POLICY = 4

_EXIT_CODES = {
    RunStatus.SUCCESS: EXIT_SUCCESS,
    RunStatus.COMPLETED_WITH_FAILURES: EXIT_PARTIAL_FAILURES,
    RunStatus.CANCELLED: EXIT_CANCELLED,
    RunStatus.INVALID_POLICY: EXIT_INVALID_POLICY,
}

_LEGACY_SWITCHES = {
    "/S": "--recurse",
    "/E": "--recurse-empty",
    "/Z": "--restartable",
    "/B": "--backup",
    "/PURGE": "--purge",
    "/MIR": "--mirror",
    "/MOV": "--mov",
    "/MOVE": "--move",
    "/L": "--list-only",
    "/NP": "--no-progress",
    "/NFL": "--no-file-list",
    "/EMPTY": "--empty-files",
    "/CHILDONLY": "--child-only",
    "/SHRED": "--shred",
    "/MT": "--threads=8",
}

_LEGACY_VALUES = {
    "/A+:": "--attr-add",
    "/A-:": "--attr-remove",
    "/MT:": "--threads",
    "/R:": "--retries",
    "/W:": "--wait",
    "/LOG:": "--log",
}


def translate_legacy_args(argv: list[str]) -> list[str]:
    translated: list[str] = []
    for arg in argv:
        upper = arg.upper()
        if upper in _LEGACY_SWITCHES:
            translated.append(_LEGACY_SWITCHES[upper])
            continue
        for prefix, option in _LEGACY_VALUES.items():
            if upper.startswith(prefix):
                translated.append(f"{option}={arg[len(prefix):]}")
                break
        else:
            translated.append(arg)
    return translated


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="colemencopy", description="Robocopy-style directory synchronization")
    subparsers = parser.add_subparsers(dest="command", required=True)

    copy_parser = subparsers.add_parser("copy", help="Synchronize SOURCE into DESTINATION")
    copy_parser.add_argument("source", type=Path)
    copy_parser.add_argument("destination", type=Path)
    copy_parser.add_argument("patterns", nargs="*", help="File name patterns, '*' wildcard only")
    copy_parser.add_argument("--recurse", action="store_true", help="Copy subdirectories, but not empty ones (/S)")
    copy_parser.add_argument("--recurse-empty", action="store_true", help="Copy subdirectories, including empty ones (/E)")
    copy_parser.add_argument("--restartable", action="store_true", help="Resume interrupted copies (/Z)")
    copy_parser.add_argument("--backup", action="store_true", help="Accepted for compatibility; no effect (/B)")
    copy_parser.add_argument("--purge", action="store_true", help="Delete destination entries missing from source (/PURGE)")
    copy_parser.add_argument("--mirror", action="store_true", help="Mirror the tree: --purge plus --recurse-empty (/MIR)")
    copy_parser.add_argument("--mov", action="store_true", help="Move files: delete from source after copying (/MOV)")
    copy_parser.add_argument("--move", action="store_true", help="Move files and directories (/MOVE)")
    copy_parser.add_argument("--attr-add", default="", help="Add attributes to copied files, RASHCNETO (/A+:)")
    copy_parser.add_argument("--attr-remove", default="", help="Remove attributes from copied files (/A-:)")
    copy_parser.add_argument("--threads", type=int, default=DEFAULT_CONCURRENCY, help="Concurrent copies (/MT:n)")
    copy_parser.add_argument("--retries", type=int, default=DEFAULT_MAX_RETRIES, help="Retries per failed action (/R:n)")
    copy_parser.add_argument("--wait", type=float, default=DEFAULT_WAIT_SECONDS, help="Seconds between retries (/W:n)")
    copy_parser.add_argument("--log", type=Path, default=None, help="Write the log to a file (/LOG:file)")
    copy_parser.add_argument("--list-only", action="store_true", help="List only, change nothing (/L)")
    copy_parser.add_argument("--no-progress", action="store_true", help="Do not display percent copied (/NP)")
    copy_parser.add_argument("--no-file-list", action="store_true", help="Do not log file names (/NFL)")
    copy_parser.add_argument("--empty-files", action="store_true", help="Create zero-byte copies of files (/EMPTY)")
    copy_parser.add_argument("--child-only", action="store_true", help="Sync each direct child folder separately (/CHILDONLY)")
    copy_parser.add_argument("--shred", action="store_true", help="Overwrite files before deleting them (/SHRED)")
    copy_parser.add_argument("--exclude", action="append", default=[], help="Gitignore-style exclusion, repeatable")
    copy_parser.add_argument("--exclude-from", type=Path, default=None, help="File of gitignore-style exclusions")
    copy_parser.add_argument("--save-job", type=Path, default=None, help="Save these options as a YAML/JSON job")

    job_parser = subparsers.add_parser("job", help="Run a saved job file")
    job_parser.add_argument("--config", required=True, type=Path)
    job_parser.add_argument("--list-only", action="store_true")

    validate_parser = subparsers.add_parser("validate-job", help="Validate a saved job file")
    validate_parser.add_argument("--config", required=True, type=Path)

    return parser


def options_from_args(args: argparse.Namespace) -> RunOptions:
    if args.move:
        move = MoveMode.FILES_AND_DIRS
    elif args.mov:
        move = MoveMode.FILES
    else:
        move = MoveMode.NONE

    policy = SyncPolicy(
        recurse_empty=args.recurse_empty,
        recurse_non_empty=args.recurse,
        purge=args.purge,
        mirror=args.mirror,
        move=move,
        empty_mode=args.empty_files,
        child_only=args.child_only,
        attr_add=args.attr_add,
        attr_remove=args.attr_remove,
        include_patterns=list(args.patterns),
        exclude_patterns=list(args.exclude),
    )
    return RunOptions(
        source=args.source,
        destination=args.destination,
        policy=policy,
        retry=RetryPolicy(max_retries=args.retries, wait_seconds=args.wait, restartable=args.restartable),
        concurrency=args.threads,
        log_file=args.log,
        list_only=args.list_only,
        no_progress=args.no_progress,
        no_file_list=args.no_file_list,
        secure_delete=args.shred,
        exclude_file=args.exclude_from,
    )


def _print_progress(percent: int) -> None:
    print(f"\rCopying: {percent}% complete", end="", file=sys.stderr, flush=True)


def _exit_code(result: RunResult) -> int:
    return _EXIT_CODES[result.status]


def _run(options: RunOptions) -> int:
    configure_logging(options.log_file)
    result = run_sync(options, on_progress=_print_progress)
    if not options.no_progress:
        print(file=sys.stderr)
    return _exit_code(result)


def cmd_copy(args: argparse.Namespace) -> int:
    options = options_from_args(args)
    if args.save_job is not None:
        try:
            save_job(options, args.save_job)
        except OSError as exc:
            print(f"Cannot save job file: {exc}", file=sys.stderr)
            return EXIT_RUNTIME_ERROR
        print(f"Saved job: {args.save_job}")
    return _run(options)


def cmd_job(config_path: Path, list_only: bool) -> int:
    configure_logging()
    loaded: list[RunOptions] = []

    def prepare(options: RunOptions) -> None:
        configure_logging(options.log_file)
        loaded.append(options)

    result = run_job_file(
        config_path,
        list_only=True if list_only else None,
        on_progress=_print_progress,
        on_loaded=prepare,
    )
    if loaded and not loaded[0].no_progress:
        print(file=sys.stderr)
    return _exit_code(result)


def cmd_validate(config_path: Path) -> int:
    try:
        options = load_job(config_path)
        validate_options(options)
    except ArgumentError as exc:
        print(f"Invalid job file: {exc}", file=sys.stderr)
        return EXIT_INVALID_POLICY

    print(f"Valid job: {config_path}")
    print(f"  - source={options.source}")
    print(f"  - destination={options.destination}")
    print(f"  - patterns={' '.join(options.policy.include_patterns) or '*.*'}")
    print(f"  - options={format_options(options)}")
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    raw_args = list(sys.argv[1:] if argv is None else argv)
    args = parser.parse_args(translate_legacy_args(raw_args))

    if args.command == "copy":
        return cmd_copy(args)
    if args.command == "job":
        return cmd_job(config_path=args.config, list_only=args.list_only)
    if args.command == "validate-job":
        return cmd_validate(args.config)

    parser.print_help()
    return EXIT_RUNTIME_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
