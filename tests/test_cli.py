from __future__ import annotations

import json
import zipfile
from pathlib import Path

import pytest
from pdf_builders import widget_values
from typer.testing import CliRunner

from formfill_apps.cli.io import report_path_for, write_bytes_atomic
from formfill_apps.cli.main import app

runner = CliRunner()


def _write_sample(tmp_path: Path) -> Path:
    template = tmp_path / "sample.pdf"
    result = runner.invoke(app, ["sample-template", "--out", str(template)])
    assert result.exit_code == 0
    return template


def _write_settings(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "engine.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_sample_template_then_discover(tmp_path: Path) -> None:
    template = _write_sample(tmp_path)
    catalog = tmp_path / "catalog.json"
    sample = tmp_path / "record.json"

    result = runner.invoke(
        app,
        ["discover", "--template", str(template), "--out", str(catalog), "--sample-record", str(sample)],
    )

    assert result.exit_code == 0
    payload = json.loads(catalog.read_text(encoding="utf-8"))
    assert payload["discovery_stage"] == "structured_catalog"
    assert payload["classification"]["complexity"] == "simple"
    names = [field["name"] for field in payload["fields"]]
    assert "first_name" in names and "department" in names
    record = json.loads(sample.read_text(encoding="utf-8"))
    assert record["full_time"] == "true"
    assert record["department"] == "Engineering"
    assert record["first_name"] == "sample_value"


def test_fill_writes_pdf_and_report(tmp_path: Path) -> None:
    template = _write_sample(tmp_path)
    record = tmp_path / "record.json"
    mappings = tmp_path / "mappings.json"
    out = tmp_path / "out" / "filled.pdf"
    record.write_text(json.dumps({"id": "r1", "first": "Ana"}), encoding="utf-8")
    mappings.write_text(json.dumps({"first_name": "first"}), encoding="utf-8")
    settings = _write_settings(tmp_path, "flatten_simple: false\n")

    result = runner.invoke(
        app,
        [
            "fill",
            "--template",
            str(template),
            "--record",
            str(record),
            "--mappings",
            str(mappings),
            "--out",
            str(out),
            "--settings",
            str(settings),
        ],
    )

    assert result.exit_code == 0
    assert "outcome=filled" in result.output
    assert widget_values(out.read_bytes())["first_name"] == "Ana"
    report = json.loads(report_path_for(out).read_text(encoding="utf-8"))
    assert report["record_id"] == "r1"
    assert report["fields_filled"] == 1


def test_batch_writes_archive_and_progress(tmp_path: Path) -> None:
    template = _write_sample(tmp_path)
    records = tmp_path / "records.json"
    mappings = tmp_path / "mappings.json"
    out = tmp_path / "batch.zip"
    records.write_text(
        json.dumps([{"id": "1", "name": "Ana Pop"}, {"id": "2", "name": "Ion Ionescu"}]),
        encoding="utf-8",
    )
    mappings.write_text(
        json.dumps([{"field_name": "first_name", "source_column": "name"}]),
        encoding="utf-8",
    )

    result = runner.invoke(
        app,
        [
            "batch",
            "--template",
            str(template),
            "--records",
            str(records),
            "--mappings",
            str(mappings),
            "--out",
            str(out),
            "--section",
            "hr",
        ],
    )

    assert result.exit_code == 0
    assert "INFO(progress): 2/2 completed" in result.output
    assert "filled=2" in result.output
    with zipfile.ZipFile(out) as bundle:
        assert sorted(bundle.namelist()) == ["hr_Ana_Pop_1.pdf", "hr_Ion_Ionescu_2.pdf", "summary.json"]


def test_empty_template_exits_with_code_2(tmp_path: Path) -> None:
    template = tmp_path / "empty.pdf"
    template.write_bytes(b"")

    result = runner.invoke(app, ["discover", "--template", str(template)])

    assert result.exit_code == 2
    assert "unreadable template" in result.output


def test_invalid_settings_exit_with_code_1(tmp_path: Path) -> None:
    template = _write_sample(tmp_path)
    settings = _write_settings(tmp_path, "domain_lexicon: klingon\n")

    result = runner.invoke(app, ["discover", "--template", str(template), "--settings", str(settings)])

    assert result.exit_code == 1
    assert "Unknown domain_lexicon" in result.output


def test_write_bytes_atomic_cleans_tmp_on_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = tmp_path / "out.pdf"

    def broken_replace(self: Path, _target: Path) -> Path:
        raise RuntimeError("replace failed")

    monkeypatch.setattr(Path, "replace", broken_replace)

    with pytest.raises(RuntimeError, match="replace failed"):
        write_bytes_atomic(target, b"%PDF-1.7")

    assert not target.exists()
    assert list(tmp_path.glob("out.pdf.*.tmp")) == []
