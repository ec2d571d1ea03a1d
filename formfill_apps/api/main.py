"""FastAPI wrapper for field discovery and batch fill."""

from __future__ import annotations

import asyncio
import importlib.metadata
import json
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Annotated, Any

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from formfill.config.models import EngineSettings
from formfill.config.settings_loader import load_settings
from formfill.fill.models import BatchResult
from formfill.orchestrator.archive import build_archive
from formfill.orchestrator.batch import run_batch
from formfill.orchestrator.inputs import parse_mappings, parse_records
from formfill.templates.loader import load_template
from formfill.templates.models import Template
from formfill.templates.samples import build_sample_record
from formfill.utils.errors import UnreadableInputError
from formfill.utils.events import LoggingEventSink
from formfill.utils.pdf_objects import PDF_SIGNATURE

app = FastAPI(title="formfill API", version="0.1.0")
logger = logging.getLogger("formfill.api")

_DEFAULT_MAX_UPLOAD_BYTES = 25 * 1024 * 1024
_REQUEST_ID_HEADER = "X-Formfill-Request-Id"


class ApiRequestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail or {}


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            error_code="INTERNAL_ERROR",
            status_code=500,
            failure_stage="middleware",
        )
        response = _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"path": request.url.path},
        )
    response.headers.setdefault(_REQUEST_ID_HEADER, request_id)
    return response


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.post("/v1/discover", response_model=None)
async def discover_v1(
    request: Request,
    template: Annotated[UploadFile, File(...)],
) -> JSONResponse:
    """Classify a template and return its field catalog plus a sample record."""

    request_started = time.perf_counter()
    request_id = _request_id_from_request(request)
    failure_stage = "init"

    try:
        failure_stage = "load_settings"
        settings = _load_settings_with_api_error()

        failure_stage = "upload"
        data = _read_template_upload(template, max_bytes=_max_upload_bytes())
        _log_event(logging.INFO, "start", request_id, endpoint="discover", template_bytes=len(data))

        failure_stage = "discover"
        loaded = await asyncio.to_thread(_load_template_with_api_error, data, template.filename, settings)

        payload = _catalog_payload(loaded)
        payload["request_id"] = request_id
        _log_event(
            logging.INFO,
            "done",
            request_id,
            endpoint="discover",
            complexity=loaded.classification.complexity,
            discovery_stage=loaded.discovery_stage,
            field_count=len(loaded.fields),
            total_ms=_elapsed_ms(request_started),
        )
        return JSONResponse(status_code=200, headers={_REQUEST_ID_HEADER: request_id}, content=payload)
    except ApiRequestError as exc:
        return _handle_api_error(exc, request_id, failure_stage)
    except Exception as exc:  # noqa: BLE001
        return _handle_internal_error(exc, request_id, failure_stage)


@app.post("/v1/batch", response_model=None)
async def batch_v1(
    request: Request,
    template: Annotated[UploadFile, File(...)],
    records: Annotated[UploadFile, File(...)],
    mappings: Annotated[UploadFile | None, File()] = None,
    section: Annotated[str, Form()] = "document",
) -> Response | JSONResponse:
    """Fill every record into the template and return a ZIP archive."""

    request_started = time.perf_counter()
    request_id = _request_id_from_request(request)
    failure_stage = "init"

    try:
        failure_stage = "load_settings"
        settings = _load_settings_with_api_error()
        max_upload_bytes = _max_upload_bytes()

        failure_stage = "upload"
        data = _read_template_upload(template, max_bytes=max_upload_bytes)
        record_list = _parse_json_upload(records, "records", max_upload_bytes, parse_records)
        mapping_list = (
            _parse_json_upload(mappings, "mappings", max_upload_bytes, parse_mappings) if mappings is not None else []
        )
        _log_event(
            logging.INFO,
            "start",
            request_id,
            endpoint="batch",
            template_bytes=len(data),
            record_count=len(record_list),
            mapping_count=len(mapping_list),
            section=section,
            max_upload_bytes=max_upload_bytes,
        )

        failure_stage = "discover"
        loaded = await asyncio.to_thread(_load_template_with_api_error, data, template.filename, settings)

        failure_stage = "batch"
        batch = await asyncio.to_thread(
            run_batch,
            loaded,
            record_list,
            mapping_list,
            settings=settings,
            section=section,
            sink=LoggingEventSink(),
        )

        failure_stage = "archive"
        archive = build_archive(batch)

        _log_event(
            logging.INFO,
            "done",
            request_id,
            endpoint="batch",
            summary=batch.summary.model_dump(),
            archive_bytes=len(archive),
            total_ms=_elapsed_ms(request_started),
        )
        return Response(
            content=archive,
            media_type="application/zip",
            headers={
                _REQUEST_ID_HEADER: request_id,
                "Content-Disposition": f'attachment; filename="{_archive_name(section)}"',
                **_summary_headers(batch),
            },
        )
    except ApiRequestError as exc:
        return _handle_api_error(exc, request_id, failure_stage)
    except Exception as exc:  # noqa: BLE001
        return _handle_internal_error(exc, request_id, failure_stage)


def _parse_json_upload(upload: UploadFile, field_name: str, max_bytes: int, parser):
    raw_bytes = _read_upload_with_limit(upload=upload, max_bytes=max_bytes, field_name=field_name)
    try:
        raw = json.loads(raw_bytes.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_JSON",
            message=f"{field_name} must be valid UTF-8 JSON",
            detail={"field": field_name, "reason": str(exc)},
        ) from exc
    try:
        return parser(raw)
    except ValueError as exc:
        raise ApiRequestError(
            status_code=422,
            error_code="INVALID_PAYLOAD",
            message=str(exc),
            detail={"field": field_name},
        ) from exc


def _catalog_payload(template: Template) -> dict[str, Any]:
    return {
        "file_name": template.file_name,
        "page_count": template.page_count,
        "classification": template.classification.model_dump(mode="json"),
        "discovery_stage": template.discovery_stage,
        "fields": [descriptor.to_dict() for descriptor in template.fields],
        "sample_record": build_sample_record(template.fields),
        "build": {"version": _package_version()},
    }


def _summary_headers(batch: BatchResult) -> dict[str, str]:
    summary = batch.summary
    return {
        "X-Formfill-Total": str(summary.total),
        "X-Formfill-Filled": str(summary.filled),
        "X-Formfill-Fallback": str(summary.fallback),
        "X-Formfill-Failed": str(summary.failed),
    }


def _archive_name(section: str) -> str:
    safe = "".join(char if char.isalnum() or char in "-_" else "_" for char in section) or "document"
    return f"{safe}.zip"


def _read_template_upload(upload: UploadFile, *, max_bytes: int) -> bytes:
    _validate_upload_name(upload.filename, expected_suffix=".pdf", field_name="template")
    data = _read_upload_with_limit(upload=upload, max_bytes=max_bytes, field_name="template")
    if not data:
        raise ApiRequestError(
            status_code=422,
            error_code="UNREADABLE_TEMPLATE",
            message="template is empty",
            detail={"field": "template"},
        )
    if not data.startswith(PDF_SIGNATURE):
        raise ApiRequestError(
            status_code=415,
            error_code="INVALID_MEDIA_TYPE",
            message="template must be a valid .pdf file",
            detail={"field": "template"},
        )
    return data


def _load_template_with_api_error(data: bytes, file_name: str | None, settings: EngineSettings) -> Template:
    try:
        return load_template(data, file_name or "template.pdf", settings, sink=LoggingEventSink())
    except UnreadableInputError as exc:
        raise ApiRequestError(
            status_code=422,
            error_code="UNREADABLE_TEMPLATE",
            message=str(exc),
            detail={"field": "template"},
        ) from exc


def _load_settings_with_api_error() -> EngineSettings:
    raw_path = os.getenv("FORMFILL_SETTINGS_PATH")
    try:
        return load_settings(Path(raw_path) if raw_path else None)
    except ValueError as exc:
        raise ApiRequestError(
            status_code=500,
            error_code="SETTINGS_INVALID",
            message=str(exc),
        ) from exc


def _validate_upload_name(filename: str | None, *, expected_suffix: str, field_name: str) -> None:
    if filename is None or not filename.lower().endswith(expected_suffix):
        raise ApiRequestError(
            status_code=415,
            error_code="INVALID_MEDIA_TYPE",
            message=f"{field_name} must be a {expected_suffix} file",
            detail={"field": field_name, "filename": filename},
        )


def _read_upload_with_limit(*, upload: UploadFile, max_bytes: int, field_name: str) -> bytes:
    chunks: list[bytes] = []
    total_size = 0

    source = upload.file
    source.seek(0)
    while True:
        chunk = source.read(1024 * 1024)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            raise ApiRequestError(
                status_code=413,
                error_code="UPLOAD_TOO_LARGE",
                message=f"{field_name} exceeds upload size limit",
                detail={
                    "field": field_name,
                    "max_bytes": max_bytes,
                    "received_bytes": total_size,
                },
            )
        chunks.append(chunk)

    source.close()
    return b"".join(chunks)


def _max_upload_bytes() -> int:
    raw = os.getenv("FORMFILL_MAX_UPLOAD_BYTES")
    if raw is None:
        return _DEFAULT_MAX_UPLOAD_BYTES
    try:
        parsed = int(raw)
    except ValueError:
        return _DEFAULT_MAX_UPLOAD_BYTES
    return parsed if parsed > 0 else _DEFAULT_MAX_UPLOAD_BYTES


def _handle_api_error(exc: ApiRequestError, request_id: str, failure_stage: str) -> JSONResponse:
    _log_event(
        logging.ERROR,
        "error",
        request_id,
        error_code=exc.error_code,
        status_code=exc.status_code,
        failure_stage=failure_stage,
    )
    return _error_response(
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.message,
        request_id=request_id,
        detail=exc.detail,
    )


def _handle_internal_error(exc: Exception, request_id: str, failure_stage: str) -> JSONResponse:
    _log_event(
        logging.ERROR,
        "error",
        request_id,
        error_code="INTERNAL_ERROR",
        status_code=500,
        failure_stage=failure_stage,
        error_type=type(exc).__name__,
    )
    return _error_response(
        status_code=500,
        error_code="INTERNAL_ERROR",
        message="internal server error",
        request_id=request_id,
        detail={"failure_stage": failure_stage},
    )


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return uuid.uuid4().hex


def _package_version() -> str:
    try:
        return importlib.metadata.version("formfill")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _error_response(
    *,
    status_code: int,
    error_code: str,
    message: str,
    request_id: str,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    payload_detail = dict(detail or {})
    payload_detail["request_id"] = request_id

    return JSONResponse(
        status_code=status_code,
        headers={_REQUEST_ID_HEADER: request_id},
        content={
            "error_code": error_code,
            "message": message,
            "detail": payload_detail,
        },
    )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    payload = {
        "event": event,
        "request_id": request_id,
        **fields,
    }
    logger.log(level, _dump_json(payload))
