from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
import sys

from colemencopy.attributes import format_attribute_letters, parse_attribute_letters
from colemencopy.config import DEFAULT_CONCURRENCY, DEFAULT_MAX_RETRIES, DEFAULT_WAIT_SECONDS, MoveMode, RunOptions
from colemencopy.models import ActionKind, Outcome, ProgressEvent, SkipReason, Statistics


PRODUCT_NAME = "ColemenCopy"
RULE = "-" * 79

_DONE_MESSAGES = {
    ActionKind.COPY_FILE: "Copying file",
    ActionKind.MOVE_FILE: "Moving file",
    ActionKind.CREATE_EMPTY_FILE: "Creating empty file",
    ActionKind.CREATE_DIR: "Creating directory",
    ActionKind.DELETE_FILE: "Removing file",
    ActionKind.DELETE_DIR: "Removing directory",
}

_LISTED_MESSAGES = {
    ActionKind.COPY_FILE: "Would copy file",
    ActionKind.MOVE_FILE: "Would move file",
    ActionKind.CREATE_EMPTY_FILE: "Would create empty file",
    ActionKind.CREATE_DIR: "Would create directory",
    ActionKind.DELETE_FILE: "Would remove file",
    ActionKind.DELETE_DIR: "Would remove directory",
}

_SKIP_MESSAGES = {
    SkipReason.UP_TO_DATE.value: "Skipping identical file",
    SkipReason.EMPTY_DIR.value: "Skipping empty directory",
    SkipReason.FILTERED.value: "Skipping filtered file",
    SkipReason.EXCLUDED.value: "Skipping excluded path",
    SkipReason.EXTRA.value: "Keeping extra destination entry",
    SkipReason.NOT_RECURSED.value: "Skipping subdirectory",
    SkipReason.UNREADABLE.value: "Skipping unreadable path",
    SkipReason.MISMATCH.value: "Skipping file/directory mismatch",
}


def format_time(moment: datetime) -> str:
    return moment.strftime("%H:%M:%S")


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def format_options(options: RunOptions) -> str:
    policy = options.policy
    flags: list[str] = []

    if policy.mirror:
        flags.append("/MIR")
    else:
        if policy.recurse_empty:
            flags.append("/E")
        elif policy.recurse_non_empty:
            flags.append("/S")
        if policy.purge:
            flags.append("/PURGE")

    if options.retry.restartable:
        flags.append("/Z")
    if policy.move is MoveMode.FILES_AND_DIRS:
        flags.append("/MOVE")
    elif policy.move is MoveMode.FILES:
        flags.append("/MOV")
    if policy.attr_add:
        flags.append(f"/A+:{format_attribute_letters(parse_attribute_letters(policy.attr_add))}")
    if policy.attr_remove:
        flags.append(f"/A-:{format_attribute_letters(parse_attribute_letters(policy.attr_remove))}")
    if options.concurrency != DEFAULT_CONCURRENCY:
        flags.append(f"/MT:{options.concurrency}")
    if options.retry.max_retries != DEFAULT_MAX_RETRIES:
        flags.append(f"/R:{options.retry.max_retries}")
    if options.retry.wait_seconds != DEFAULT_WAIT_SECONDS:
        flags.append(f"/W:{_format_number(options.retry.wait_seconds)}")
    if options.list_only:
        flags.append("/L")
    if options.no_progress:
        flags.append("/NP")
    if options.no_file_list:
        flags.append("/NFL")
    if policy.empty_mode:
        flags.append("/EMPTY")
    if policy.child_only:
        flags.append("/CHILDONLY")
    if options.secure_delete:
        flags.append("/SHRED")
    return " ".join(flags)


def format_header(options: RunOptions, started_at: datetime) -> str:
    patterns = " ".join(options.policy.include_patterns) or "*.*"
    return (
        f"{RULE}\n"
        f"{PRODUCT_NAME} - Started: {format_time(started_at)}\n"
        f"Source: {options.source}\n"
        f"Destination: {options.destination}\n"
        f"Pattern: {patterns}\n"
        f"Options: {format_options(options)}\n"
        f"{RULE}\n"
    )


def format_summary(
    source: Path,
    destination: Path,
    statistics: Statistics,
    elapsed_seconds: float,
    finished_at: datetime,
) -> str:
    return (
        f"{RULE}\n"
        f"{PRODUCT_NAME} - Finished: {format_time(finished_at)}\n"
        f"Source: {source}\n"
        f"Destination: {destination}\n"
        f"\n"
        f"Statistics:\n"
        f"Directories: {statistics.dirs}\n"
        f"Files: {statistics.files}\n"
        f"Bytes: {statistics.bytes}\n"
        f"Directories skipped: {statistics.dirs_skipped}\n"
        f"Files skipped: {statistics.files_skipped}\n"
        f"Files failed: {statistics.files_failed}\n"
        f"Directories removed: {statistics.dirs_removed}\n"
        f"Files removed: {statistics.files_removed}\n"
        f"\n"
        f"Elapsed time: {int(elapsed_seconds)} seconds\n"
        f"{RULE}\n"
    )


class EventLogger:
    def __init__(
        self,
        list_only: bool = False,
        no_file_list: bool = False,
        secure_delete: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self.list_only = list_only
        self.no_file_list = no_file_list
        self.secure_delete = secure_delete
        self._log = logger or logging.getLogger("colemencopy.files")

    def __call__(self, event: ProgressEvent) -> None:
        if event.outcome is Outcome.FAILED:
            self._log.error("Failed: %s %s, Error: %s", event.action_kind.value, event.path, event.reason)
            return
        if event.outcome is Outcome.CANCELLED:
            self._log.warning("Cancelled: %s %s", event.action_kind.value, event.path)
            return
        if self.no_file_list:
            return

        if event.action_kind is ActionKind.SKIP:
            message = _SKIP_MESSAGES.get(event.reason or "", "Skipping")
        elif self.list_only:
            message = _LISTED_MESSAGES[event.action_kind]
        else:
            message = _DONE_MESSAGES[event.action_kind]
            if self.secure_delete and event.action_kind in (ActionKind.DELETE_FILE, ActionKind.DELETE_DIR):
                message = f"Securely {message[0].lower()}{message[1:]}"
        self._log.info("%s: %s", message, event.path)


def configure_logging(log_file: Path | None = None, console: bool = True, level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger("colemencopy")
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter("%(message)s")

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
