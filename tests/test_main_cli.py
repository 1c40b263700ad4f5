from __future__ import annotations

import json
from pathlib import Path

import pytest

from main import build_parser, load_form_data
from tests.mock_applicant import mock_applicant


def test_load_form_data_reads_file_and_flattens(tmp_path: Path) -> None:
    path = tmp_path / "applicant.json"
    path.write_text(json.dumps(mock_applicant()), encoding="utf-8")

    data = load_form_data(str(path))

    assert data["personal_info.surnames"] == "EXAMPLE"
    assert "personal_info" not in data


def test_load_form_data_accepts_raw_json() -> None:
    assert load_form_data('{"a": {"b": "c"}}') == {"a.b": "c"}


@pytest.mark.parametrize("raw", ["not json", "[1, 2]"])
def test_load_form_data_rejects_bad_input(raw: str) -> None:
    with pytest.raises(SystemExit):
        load_form_data(raw)


def test_parser_commands() -> None:
    parser = build_parser()

    run = parser.parse_args(["run", "--form-data", "{}", "--embassy", "ISL", "--headed"])
    solve = parser.parse_args(
        ["solve", "--job-id", "j", "--challenge-id", "c", "--solution", "K7PQ2"]
    )

    assert run.command == "run" and run.headed is True and run.user_id == "cli"
    assert solve.solution == "K7PQ2"
    with pytest.raises(SystemExit):
        parser.parse_args([])
