"""Typer CLI entrypoint for formfill."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer

from formfill.config.models import EngineSettings
from formfill.config.settings_loader import load_settings
from formfill.fill.engine import SafeFillEngine
from formfill.orchestrator.archive import build_archive
from formfill.orchestrator.batch import build_output_name, run_batch
from formfill.orchestrator.inputs import parse_mappings, parse_records
from formfill.templates.loader import load_template
from formfill.templates.models import Template
from formfill.templates.samples import build_sample_record, build_sample_template
from formfill.utils.errors import UnreadableInputError
from formfill.utils.events import LoggingEventSink, ProgressEvent
from formfill_apps.cli.io import read_json, report_path_for, write_bytes_atomic, write_json_atomic

app = typer.Typer(help="PDF form field discovery and safe fill CLI", rich_markup_mode=None)

EXIT_OK = 0
EXIT_INTERNAL = 1
EXIT_UNREADABLE = 2

TemplateOption = Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)]
SettingsOption = Annotated[
    Path | None,
    typer.Option("--settings", help="Engine settings YAML (defaults to the bundled engine.yaml)."),
]


class EchoProgressSink(LoggingEventSink):
    """Log diagnostics as JSON and echo batch progress lines."""

    def on_progress(self, event: ProgressEvent) -> None:
        super().on_progress(event)
        suffix = f" {event.record_id}" if event.record_id else ""
        typer.echo(f"INFO(progress): {event.current}/{event.total} {event.status}{suffix}")


@app.callback()
def cli_callback() -> None:
    """CLI root callback to keep subcommands explicit."""


@app.command("discover")
def discover_command(
    template: TemplateOption,
    out: Annotated[Path | None, typer.Option(help="Write the catalog JSON here instead of stdout.")] = None,
    sample_record: Annotated[
        Path | None, typer.Option("--sample-record", help="Also write an example record JSON.")
    ] = None,
    settings: SettingsOption = None,
) -> None:
    """Classify a template and print its field catalog."""

    try:
        engine_settings = load_settings(settings)
        loaded = _load(template, engine_settings)
        payload = _catalog_payload(loaded)
        if out is None:
            typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        else:
            write_json_atomic(out, payload)
            typer.echo(f"INFO: wrote catalog to {out}")
        if sample_record is not None:
            write_json_atomic(sample_record, build_sample_record(loaded.fields))
            typer.echo(f"INFO: wrote sample record to {sample_record}")
    except UnreadableInputError as exc:
        typer.echo(f"ERROR: unreadable template: {exc}")
        raise typer.Exit(code=EXIT_UNREADABLE)
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL)

    raise typer.Exit(code=EXIT_OK)


@app.command("fill")
def fill_command(
    template: TemplateOption,
    record: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, help="One record JSON object.")],
    mappings: Annotated[Path | None, typer.Option(exists=True, dir_okay=False)] = None,
    out: Annotated[Path, typer.Option()] = Path("out.pdf"),
    settings: SettingsOption = None,
) -> None:
    """Fill one record and write the PDF plus a fill report."""

    try:
        engine_settings = load_settings(settings)
        loaded = _load(template, engine_settings)
        records = parse_records([read_json(record)])
        mapping_list = parse_mappings(read_json(mappings)) if mappings is not None else []

        engine = SafeFillEngine(engine_settings, sink=LoggingEventSink())
        result = engine.fill(loaded, records[0], mapping_list)
        result.output_name = build_output_name(
            "document", records[0], mapping_list, engine_settings.name_like_columns
        )

        write_bytes_atomic(out, result.data)
        write_json_atomic(report_path_for(out), result.report())
    except UnreadableInputError as exc:
        typer.echo(f"ERROR: unreadable template: {exc}")
        raise typer.Exit(code=EXIT_UNREADABLE)
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL)

    if result.outcome == "filled_with_original_fallback":
        typer.echo(f"WARNING(fill): original template returned ({result.fallback_reason}).")
    typer.echo(
        f"INFO: outcome={result.outcome} fields_filled={result.fields_filled}/{result.fields_attempted}"
    )
    raise typer.Exit(code=EXIT_OK)


@app.command("batch")
def batch_command(
    template: TemplateOption,
    records: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, help="Records JSON list.")],
    mappings: Annotated[Path | None, typer.Option(exists=True, dir_okay=False)] = None,
    out: Annotated[Path, typer.Option()] = Path("batch.zip"),
    section: Annotated[str, typer.Option()] = "document",
    workers: Annotated[
        int | None, typer.Option(min=1, help="Override max_workers (experimental above 1).")
    ] = None,
    settings: SettingsOption = None,
) -> None:
    """Fill every record and write a ZIP archive."""

    try:
        engine_settings = load_settings(settings)
        if workers is not None:
            engine_settings = engine_settings.model_copy(update={"max_workers": workers})
        loaded = _load(template, engine_settings)
        record_list = parse_records(read_json(records))
        mapping_list = parse_mappings(read_json(mappings)) if mappings is not None else []

        batch = run_batch(
            loaded,
            record_list,
            mapping_list,
            settings=engine_settings,
            section=section,
            sink=EchoProgressSink(),
        )
        write_bytes_atomic(out, build_archive(batch))
    except UnreadableInputError as exc:
        typer.echo(f"ERROR: unreadable template: {exc}")
        raise typer.Exit(code=EXIT_UNREADABLE)
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL)

    summary = batch.summary
    typer.echo(
        f"INFO: total={summary.total} filled={summary.filled} fallback={summary.fallback} "
        f"failed={summary.failed} success_rate={summary.success_rate:.2f}"
    )
    raise typer.Exit(code=EXIT_OK)


@app.command("sample-template")
def sample_template_command(
    out: Annotated[Path, typer.Option()] = Path("sample_form.pdf"),
) -> None:
    """Write a demo AcroForm PDF."""

    try:
        write_bytes_atomic(out, build_sample_template())
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL)
    typer.echo(f"INFO: wrote sample template to {out}")
    raise typer.Exit(code=EXIT_OK)


def _load(template: Path, settings: EngineSettings) -> Template:
    return load_template(template.read_bytes(), template.name, settings, sink=LoggingEventSink())


def _catalog_payload(template: Template) -> dict[str, Any]:
    return {
        "file_name": template.file_name,
        "page_count": template.page_count,
        "classification": template.classification.model_dump(mode="json"),
        "discovery_stage": template.discovery_stage,
        "fields": [descriptor.to_dict() for descriptor in template.fields],
    }


def main() -> None:
    app()


if __name__ == "__main__":
    main()
