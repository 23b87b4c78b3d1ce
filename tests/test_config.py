from pathlib import Path

import pytest

from colemencopy.config import (
    DEFAULT_CONCURRENCY,
    MoveMode,
    RetryPolicy,
    RunOptions,
    SyncPolicy,
    load_job,
    save_job,
    validate_options,
    validate_paths,
)
from colemencopy.errors import ArgumentError


def _options(tmp_path: Path, **policy) -> RunOptions:
    source = tmp_path / "src"
    source.mkdir(exist_ok=True)
    return RunOptions(source=source, destination=tmp_path / "dst", policy=SyncPolicy(**policy))


def test_mirror_normalizes_to_purge_and_recurse_empty() -> None:
    policy = SyncPolicy(mirror=True, attr_add=" rh ", include_patterns=[" *.jpg ", "  "]).normalized()

    assert policy.purge is True
    assert policy.recurse_empty is True
    assert policy.attr_add == "RH"
    assert policy.include_patterns == ["*.jpg"]


def test_validate_paths_rejects_same_and_nested_destination(tmp_path: Path) -> None:
    with pytest.raises(ArgumentError, match="equal"):
        validate_paths(tmp_path / "src", tmp_path / "src")

    with pytest.raises(ArgumentError, match="inside source"):
        validate_paths(tmp_path / "src", tmp_path / "src" / "backup")

    validate_paths(tmp_path / "src", tmp_path / "src-backup")


def test_validate_paths_rejects_source_inside_destination(tmp_path: Path) -> None:
    with pytest.raises(ArgumentError, match="inside destination"):
        validate_paths(tmp_path / "data" / "x", tmp_path / "data")


def test_mirror_into_parent_of_source_is_rejected_and_source_survives(tmp_path: Path) -> None:
    source = tmp_path / "data" / "x"
    (source / "keep.txt").parent.mkdir(parents=True)
    (source / "keep.txt").write_text("keep", encoding="utf-8")
    options = RunOptions(source=source, destination=tmp_path / "data", policy=SyncPolicy(mirror=True))

    with pytest.raises(ArgumentError):
        validate_options(options)

    assert (source / "keep.txt").exists()


def test_validate_options_rejects_missing_source(tmp_path: Path) -> None:
    options = RunOptions(source=tmp_path / "missing", destination=tmp_path / "dst")

    with pytest.raises(ArgumentError, match="does not exist"):
        validate_options(options)


def test_validate_options_rejects_file_destination(tmp_path: Path) -> None:
    options = _options(tmp_path)
    options.destination.write_text("file", encoding="utf-8")

    with pytest.raises(ArgumentError, match="not a directory"):
        validate_options(options)


def test_empty_mode_cannot_be_combined_with_move(tmp_path: Path) -> None:
    with pytest.raises(ArgumentError, match="Empty-file mode"):
        validate_options(_options(tmp_path, empty_mode=True, move=MoveMode.FILES))


@pytest.mark.parametrize(
    "policy",
    [
        {"attr_add": "RZ"},
        {"attr_remove": "?"},
        {"include_patterns": ["dir/*.txt"]},
    ],
)
def test_validate_options_rejects_bad_policy_values(tmp_path: Path, policy: dict) -> None:
    with pytest.raises(ArgumentError):
        validate_options(_options(tmp_path, **policy))


def test_validate_options_rejects_bad_concurrency_and_retries(tmp_path: Path) -> None:
    options = _options(tmp_path)
    options.concurrency = 0
    with pytest.raises(ArgumentError, match="Concurrency"):
        validate_options(options)

    options.concurrency = 1
    options.retry = RetryPolicy(max_retries=-1)
    with pytest.raises(ArgumentError, match="Retry count"):
        validate_options(options)


def test_load_job_reads_yaml(tmp_path: Path) -> None:
    config_file = tmp_path / "job.yaml"
    config_file.write_text(
        """
source: C:/Data/Photos
destination: D:/Backup/Photos
includePatterns: "*.jpg"
excludePatterns:
  - thumbs/
mirror: true
move: files
attrAdd: R
retries: 3
waitSeconds: 0.5
restartable: true
threads: 16
noProgress: true
""".strip(),
        encoding="utf-8",
    )

    options = load_job(config_file)

    assert options.source == Path("C:/Data/Photos")
    assert options.destination == Path("D:/Backup/Photos")
    assert options.policy.include_patterns == ["*.jpg"]
    assert options.policy.exclude_patterns == ["thumbs/"]
    assert options.policy.mirror is True
    assert options.policy.move is MoveMode.FILES
    assert options.policy.attr_add == "R"
    assert options.retry == RetryPolicy(max_retries=3, wait_seconds=0.5, restartable=True)
    assert options.concurrency == 16
    assert options.no_progress is True
    assert options.list_only is False


def test_load_job_uses_defaults(tmp_path: Path) -> None:
    config_file = tmp_path / "job.json"
    config_file.write_text('{"source": "a", "destination": "b"}', encoding="utf-8")

    options = load_job(config_file)

    assert options.concurrency == DEFAULT_CONCURRENCY
    assert options.policy == SyncPolicy()
    assert options.case_sensitive is None


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("source: a\n", "destination"),
        ("source: a\ndestination: b\nthreads: 0\n", "threads"),
        ("source: a\ndestination: b\nmirror: yes-please\n", "mirror"),
        ("source: a\ndestination: b\nmove: everything\n", "move"),
        ("- just\n- a list\n", "root"),
        ("source: [unclosed\n", "Cannot parse"),
    ],
)
def test_load_job_rejects_invalid_files(tmp_path: Path, content: str, message: str) -> None:
    config_file = tmp_path / "job.yaml"
    config_file.write_text(content, encoding="utf-8")

    with pytest.raises(ArgumentError, match=message):
        load_job(config_file)


def test_load_job_rejects_unknown_suffix(tmp_path: Path) -> None:
    config_file = tmp_path / "job.toml"
    config_file.write_text("source = 'a'", encoding="utf-8")

    with pytest.raises(ArgumentError, match="yaml"):
        load_job(config_file)


@pytest.mark.parametrize("name", ["job.yaml", "job.json"])
def test_save_job_round_trips(tmp_path: Path, name: str) -> None:
    options = RunOptions(
        source=tmp_path / "src",
        destination=tmp_path / "dst",
        policy=SyncPolicy(recurse_non_empty=True, purge=True, move=MoveMode.FILES_AND_DIRS, include_patterns=["*.txt"]),
        retry=RetryPolicy(max_retries=2, wait_seconds=1.0),
        concurrency=3,
        log_file=tmp_path / "run.log",
        secure_delete=True,
    )
    config_file = tmp_path / "jobs" / name

    save_job(options, config_file)

    assert load_job(config_file) == options
