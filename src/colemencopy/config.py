from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import json
import yaml

from colemencopy.attributes import parse_attribute_letters
from colemencopy.errors import ArgumentError
from colemencopy.patterns import WildcardPattern


DEFAULT_CONCURRENCY = 8
DEFAULT_MAX_RETRIES = 1_000_000
DEFAULT_WAIT_SECONDS = 30.0


class MoveMode(Enum):
    NONE = "none"
    FILES = "files"
    FILES_AND_DIRS = "filesAndDirs"


@dataclass(slots=True)
class SyncPolicy:
    recurse_empty: bool = False
    recurse_non_empty: bool = False
    purge: bool = False
    mirror: bool = False
    move: MoveMode = MoveMode.NONE
    empty_mode: bool = False
    child_only: bool = False
    attr_add: str = ""
    attr_remove: str = ""
    include_patterns: list[str] = field(default_factory=list)
    exclude_patterns: list[str] = field(default_factory=list)

    @property
    def recurses(self) -> bool:
        return self.recurse_empty or self.recurse_non_empty or self.mirror

    def normalized(self) -> "SyncPolicy":
        return SyncPolicy(
            recurse_empty=self.recurse_empty or self.mirror,
            recurse_non_empty=self.recurse_non_empty,
            purge=self.purge or self.mirror,
            mirror=self.mirror,
            move=self.move,
            empty_mode=self.empty_mode,
            child_only=self.child_only,
            attr_add=self.attr_add.strip().upper(),
            attr_remove=self.attr_remove.strip().upper(),
            include_patterns=[item.strip() for item in self.include_patterns if item.strip()],
            exclude_patterns=[item.strip() for item in self.exclude_patterns if item.strip()],
        )


@dataclass(slots=True)
class RetryPolicy:
    max_retries: int = DEFAULT_MAX_RETRIES
    wait_seconds: float = DEFAULT_WAIT_SECONDS
    restartable: bool = False


@dataclass(slots=True)
class RunOptions:
    source: Path
    destination: Path
    policy: SyncPolicy = field(default_factory=SyncPolicy)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    concurrency: int = DEFAULT_CONCURRENCY
    log_file: Path | None = None
    list_only: bool = False
    no_progress: bool = False
    no_file_list: bool = False
    secure_delete: bool = False
    case_sensitive: bool | None = None
    exclude_file: Path | None = None


def validate_paths(source_root: Path, destination_root: Path) -> None:
    source_resolved = source_root.resolve()
    destination_resolved = destination_root.resolve()

    if source_resolved == destination_resolved:
        raise ArgumentError(f"Invalid mapping: source and destination are equal: {source_root}")

    if source_resolved in destination_resolved.parents:
        raise ArgumentError(
            f"Invalid mapping: destination is inside source, which can recurse: {destination_root}"
        )

    if destination_resolved in source_resolved.parents:
        raise ArgumentError(
            f"Invalid mapping: source is inside destination and would be treated as extra: {source_root}"
        )


def validate_options(options: RunOptions) -> None:
    source_root = options.source
    if not source_root.exists() or not source_root.is_dir():
        raise ArgumentError(f"Source directory does not exist or is not a directory: {source_root}")
    if options.destination.exists() and not options.destination.is_dir():
        raise ArgumentError(f"Destination exists and is not a directory: {options.destination}")

    validate_paths(source_root, options.destination)

    if options.concurrency < 1:
        raise ArgumentError("Concurrency must be at least 1")
    if options.retry.max_retries < 0:
        raise ArgumentError("Retry count must not be negative")
    if options.retry.wait_seconds < 0:
        raise ArgumentError("Retry wait must not be negative")

    policy = options.policy
    parse_attribute_letters(policy.attr_add)
    parse_attribute_letters(policy.attr_remove)
    for pattern in policy.include_patterns:
        WildcardPattern.compile(pattern.strip())

    if policy.empty_mode and policy.move is not MoveMode.NONE:
        raise ArgumentError("Empty-file mode cannot be combined with move: source data would be lost")


def _as_path(value: Any, field_name: str) -> Path:
    if not isinstance(value, str) or not value.strip():
        raise ArgumentError(f"{field_name} must be a non-empty string path")
    return Path(value).expanduser()


def _as_optional_path(value: Any, field_name: str) -> Path | None:
    if value is None:
        return None
    return _as_path(value, field_name)


def _as_bool(value: Any, field_name: str, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ArgumentError(f"{field_name} must be a boolean")


def _as_optional_bool(value: Any, field_name: str) -> bool | None:
    if value is None:
        return None
    return _as_bool(value, field_name, default=False)


def _as_int(value: Any, field_name: str, default: int, minimum: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ArgumentError(f"{field_name} must be an integer")
    if value < minimum:
        raise ArgumentError(f"{field_name} must be at least {minimum}")
    return value


def _as_number(value: Any, field_name: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ArgumentError(f"{field_name} must be a number")
    if value < 0:
        raise ArgumentError(f"{field_name} must not be negative")
    return float(value)


def _as_str(value: Any, field_name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ArgumentError(f"{field_name} must be a string")
    return value


def _as_list_of_strings(value: Any, field_name: str, default: list[str] | None = None) -> list[str]:
    if value is None:
        return list(default or [])
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or any(not isinstance(item, str) for item in value):
        raise ArgumentError(f"{field_name} must be a list of strings")
    return [item for item in value if item.strip()]


def _as_move_mode(value: Any) -> MoveMode:
    if value is None or value is False:
        return MoveMode.NONE
    try:
        return MoveMode(value)
    except ValueError:
        allowed = ", ".join(mode.value for mode in MoveMode)
        raise ArgumentError(f"move must be one of: {allowed}") from None


def _load_raw_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ArgumentError(f"Job file does not exist: {config_path}")

    suffix = config_path.suffix.lower()
    if suffix not in {".yml", ".yaml", ".json"}:
        raise ArgumentError("Job file must be .yaml/.yml or .json")

    text = config_path.read_text(encoding="utf-8")
    try:
        loaded = json.loads(text) if suffix == ".json" else yaml.safe_load(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ArgumentError(f"Cannot parse job file {config_path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ArgumentError("Job file root must be an object")
    return loaded


def load_job(config_path: Path) -> RunOptions:
    raw = _load_raw_config(config_path)

    policy = SyncPolicy(
        recurse_empty=_as_bool(raw.get("recurseEmpty"), "recurseEmpty", default=False),
        recurse_non_empty=_as_bool(raw.get("recurseNonEmpty"), "recurseNonEmpty", default=False),
        purge=_as_bool(raw.get("purge"), "purge", default=False),
        mirror=_as_bool(raw.get("mirror"), "mirror", default=False),
        move=_as_move_mode(raw.get("move")),
        empty_mode=_as_bool(raw.get("emptyFiles"), "emptyFiles", default=False),
        child_only=_as_bool(raw.get("childOnly"), "childOnly", default=False),
        attr_add=_as_str(raw.get("attrAdd"), "attrAdd"),
        attr_remove=_as_str(raw.get("attrRemove"), "attrRemove"),
        include_patterns=_as_list_of_strings(raw.get("includePatterns"), "includePatterns"),
        exclude_patterns=_as_list_of_strings(raw.get("excludePatterns"), "excludePatterns"),
    )
    retry = RetryPolicy(
        max_retries=_as_int(raw.get("retries"), "retries", default=DEFAULT_MAX_RETRIES),
        wait_seconds=_as_number(raw.get("waitSeconds"), "waitSeconds", default=DEFAULT_WAIT_SECONDS),
        restartable=_as_bool(raw.get("restartable"), "restartable", default=False),
    )

    return RunOptions(
        source=_as_path(raw.get("source"), "source"),
        destination=_as_path(raw.get("destination"), "destination"),
        policy=policy,
        retry=retry,
        concurrency=_as_int(raw.get("threads"), "threads", default=DEFAULT_CONCURRENCY, minimum=1),
        log_file=_as_optional_path(raw.get("logFile"), "logFile"),
        list_only=_as_bool(raw.get("listOnly"), "listOnly", default=False),
        no_progress=_as_bool(raw.get("noProgress"), "noProgress", default=False),
        no_file_list=_as_bool(raw.get("noFileList"), "noFileList", default=False),
        secure_delete=_as_bool(raw.get("secureDelete"), "secureDelete", default=False),
        case_sensitive=_as_optional_bool(raw.get("caseSensitive"), "caseSensitive"),
        exclude_file=_as_optional_path(raw.get("excludeFile"), "excludeFile"),
    )


def save_job(options: RunOptions, config_path: Path) -> None:
    policy = options.policy
    payload: dict[str, Any] = {
        "source": str(options.source),
        "destination": str(options.destination),
        "includePatterns": list(policy.include_patterns),
        "excludePatterns": list(policy.exclude_patterns),
        "recurseEmpty": policy.recurse_empty,
        "recurseNonEmpty": policy.recurse_non_empty,
        "purge": policy.purge,
        "mirror": policy.mirror,
        "move": policy.move.value,
        "emptyFiles": policy.empty_mode,
        "childOnly": policy.child_only,
        "attrAdd": policy.attr_add,
        "attrRemove": policy.attr_remove,
        "threads": options.concurrency,
        "retries": options.retry.max_retries,
        "waitSeconds": options.retry.wait_seconds,
        "restartable": options.retry.restartable,
        "listOnly": options.list_only,
        "noProgress": options.no_progress,
        "noFileList": options.no_file_list,
        "secureDelete": options.secure_delete,
    }
    if options.log_file is not None:
        payload["logFile"] = str(options.log_file)
    if options.exclude_file is not None:
        payload["excludeFile"] = str(options.exclude_file)
    if options.case_sensitive is not None:
        payload["caseSensitive"] = options.case_sensitive

    config_path.parent.mkdir(parents=True, exist_ok=True)
    if config_path.suffix.lower() == ".json":
        config_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    else:
        config_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
