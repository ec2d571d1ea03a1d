from __future__ import annotations

import io
import json
import logging
import zipfile

import httpx
import pytest

from formfill.templates.samples import build_sample_template
from formfill_apps.api.main import app


def _zip_map(content: bytes) -> dict[str, bytes]:
    with zipfile.ZipFile(io.BytesIO(content), "r") as archive:
        return {name: archive.read(name) for name in archive.namelist()}


@pytest.mark.anyio
async def test_healthz_ok() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Formfill-Request-Id"]


@pytest.mark.anyio
async def test_request_id_header_present_for_404() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/__does_not_exist__")

    assert response.status_code == 404
    assert response.headers["X-Formfill-Request-Id"]


@pytest.mark.anyio
async def test_discover_returns_catalog_and_sample_record() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post(
            "/v1/discover",
            files={"template": ("form.pdf", build_sample_template(), "application/pdf")},
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["request_id"] == response.headers["X-Formfill-Request-Id"]
    assert payload["discovery_stage"] == "structured_catalog"
    assert payload["classification"]["complexity"] == "simple"
    assert payload["sample_record"]["full_time"] == "true"
    department = next(field for field in payload["fields"] if field["name"] == "department")
    assert department["semantic_type"] == "single_choice"
    assert "Engineering" in department["choice_options"]


@pytest.mark.anyio
async def test_batch_returns_zip_with_summary_headers() -> None:
    records = [{"id": "1", "full_name": "Ana Pop"}, {"id": "2", "full_name": "Ion"}]
    mappings = [{"field_name": "first_name", "source_column": "full_name"}]

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post(
            "/v1/batch",
            files={
                "template": ("form.pdf", build_sample_template(), "application/pdf"),
                "records": ("records.json", json.dumps(records).encode("utf-8"), "application/json"),
                "mappings": ("mappings.json", json.dumps(mappings).encode("utf-8"), "application/json"),
            },
            data={"section": "hr"},
        )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert response.headers["X-Formfill-Total"] == "2"
    assert response.headers["X-Formfill-Filled"] == "2"
    assert response.headers["X-Formfill-Failed"] == "0"
    zipped = _zip_map(response.content)
    assert set(zipped) == {"hr_Ana_Pop_1.pdf", "hr_Ion_2.pdf", "summary.json"}
    assert zipped["hr_Ana_Pop_1.pdf"].startswith(b"%PDF-")
    summary = json.loads(zipped["summary.json"])
    assert summary["summary"]["success_rate"] == 1.0


@pytest.mark.anyio
async def test_non_pdf_template_rejected() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        wrong_name = await client.post(
            "/v1/discover",
            files={"template": ("form.docx", b"PK\x03\x04", "application/octet-stream")},
        )
        wrong_magic = await client.post(
            "/v1/discover",
            files={"template": ("form.pdf", b"not a pdf", "application/pdf")},
        )

    assert wrong_name.status_code == 415
    assert wrong_magic.status_code == 415
    assert wrong_magic.json()["error_code"] == "INVALID_MEDIA_TYPE"
    assert wrong_magic.json()["detail"]["request_id"] == wrong_magic.headers["X-Formfill-Request-Id"]


@pytest.mark.anyio
async def test_empty_template_is_unreadable() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post(
            "/v1/discover",
            files={"template": ("form.pdf", b"", "application/pdf")},
        )

    assert response.status_code == 422
    assert response.json()["error_code"] == "UNREADABLE_TEMPLATE"


@pytest.mark.anyio
async def test_invalid_records_json_rejected() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        malformed = await client.post(
            "/v1/batch",
            files={
                "template": ("form.pdf", build_sample_template(), "application/pdf"),
                "records": ("records.json", b"[{", "application/json"),
            },
        )
        wrong_shape = await client.post(
            "/v1/batch",
            files={
                "template": ("form.pdf", build_sample_template(), "application/pdf"),
                "records": ("records.json", b'{"a": 1}', "application/json"),
            },
        )

    assert malformed.status_code == 400
    assert malformed.json()["error_code"] == "INVALID_JSON"
    assert wrong_shape.status_code == 422
    assert wrong_shape.json()["error_code"] == "INVALID_PAYLOAD"


@pytest.mark.anyio
async def test_upload_limit_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FORMFILL_MAX_UPLOAD_BYTES", "64")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post(
            "/v1/discover",
            files={"template": ("form.pdf", build_sample_template(), "application/pdf")},
        )

    assert response.status_code == 413
    assert response.json()["detail"]["max_bytes"] == 64


@pytest.mark.anyio
async def test_invalid_settings_path_reports_error(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("FORMFILL_SETTINGS_PATH", str(tmp_path / "missing.yaml"))

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post(
            "/v1/discover",
            files={"template": ("form.pdf", build_sample_template(), "application/pdf")},
        )

    assert response.status_code == 500
    assert response.json()["error_code"] == "SETTINGS_INVALID"


@pytest.mark.anyio
async def test_discover_logs_start_and_done(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="formfill.api")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post(
            "/v1/discover",
            files={"template": ("form.pdf", build_sample_template(), "application/pdf")},
        )

    request_id = response.headers["X-Formfill-Request-Id"]
    events = [
        json.loads(record.getMessage())
        for record in caplog.records
        if record.name == "formfill.api"
    ]
    assert [event["event"] for event in events] == ["start", "done"]
    assert all(event["request_id"] == request_id for event in events)
