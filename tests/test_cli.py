from __future__ import annotations

import json
from pathlib import Path

import pytest

from exview import cli


def _write(tmp_path: Path, data: bytes) -> Path:
    path = tmp_path / "book.xlsx"
    path.write_bytes(data)
    return path


def test_parse_args_defaults(tmp_path: Path) -> None:
    config = cli._parse_args(["load", str(tmp_path / "book.xlsx")])
    assert config.command == "load"
    assert config.images is True
    assert config.validations is True
    assert config.read_only is False
    assert config.insert_delay == 500
    assert config.log_level == "WARNING"
    assert config.log_file is None


def test_parse_args_with_options(tmp_path: Path) -> None:
    log_file = tmp_path / "log.txt"
    config = cli._parse_args(
        [
            "load",
            "book.xlsx",
            "--no-images",
            "--read-only",
            "--insert-delay",
            "0",
            "--log-level",
            "DEBUG",
            "--log-file",
            str(log_file),
        ]
    )
    assert config.images is False
    assert config.read_only is True
    assert config.insert_delay == 0
    assert config.log_level == "DEBUG"
    assert config.log_file == log_file


def test_extract_prints_metadata(
    tmp_path: Path, sample_xlsx: bytes, capsys: pytest.CaptureFixture[str]
) -> None:
    path = _write(tmp_path, sample_xlsx)
    assert cli.main(["extract", str(path)]) == 0
    output = json.loads(capsys.readouterr().out)
    assert len(output["images"]) == 2
    assert all(image["size"] > 0 for image in output["images"])
    assert "image_bytes" not in output["images"][0]
    addresses = {item["range_address"] for item in output["validations"]}
    assert addresses == {"C2", "D5", "A1"}


def test_extract_respects_flags(
    tmp_path: Path, sample_xlsx: bytes, capsys: pytest.CaptureFixture[str]
) -> None:
    path = _write(tmp_path, sample_xlsx)
    assert cli.main(["extract", str(path), "--no-images"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output["images"] == []
    assert len(output["validations"]) == 3


def test_load_prints_summary(
    tmp_path: Path, sample_xlsx: bytes, capsys: pytest.CaptureFixture[str]
) -> None:
    path = _write(tmp_path, sample_xlsx)
    assert cli.main(["load", str(path), "--read-only", "--insert-delay", "0"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output["loaded"]["sheet_names"] == ["Summary", "Layout"]
    assert output["images"]["applied"] == 2
    assert output["validations"]["applied"] == 2
    assert output["validations"]["skipped"] == 1
    assert output["read_only"] is True
    assert output["errors"] == []


def test_missing_file_exits_with_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    missing = str(tmp_path / "missing.xlsx")
    assert cli.main(["extract", missing]) == 1
    assert cli.main(["load", missing]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Error (fetch)" in captured.err


@pytest.mark.parametrize(
    "extra",
    [
        ["--insert-delay", "-1"],
        ["--insert-delay", "soon"],
        ["--log-level", "bogus"],
    ],
)
def test_invalid_options_exit_with_usage_error(
    extra: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["load", "book.xlsx", *extra])
    assert excinfo.value.code == 2
    assert "invalid" in capsys.readouterr().err


def test_log_level_is_case_insensitive() -> None:
    config = cli._parse_args(["extract", "book.xlsx", "--log-level", "debug"])
    assert config.log_level == "DEBUG"
