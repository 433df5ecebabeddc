"""Tests for the HTTP surface."""

import io
import time
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from convert_service import webapi
from convert_service.conversion import ConversionService, ConverterRegistry, LocalStorage
from tests.helpers import FakeConverter, png_bytes


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(
        webapi, "SETTINGS", replace(webapi.SETTINGS, data_dir=tmp_path, heartbeat_interval_sec=0.01)
    )
    monkeypatch.setattr(webapi, "BATCHES", {})
    with TestClient(webapi.app) as c:
        yield c


@pytest.fixture
def slow_converter(client, tmp_path, monkeypatch):
    converter = FakeConverter(delay=0.1)
    service = ConversionService(
        ConverterRegistry({"to-fake": converter}), LocalStorage(tmp_path / "outputs"), heartbeat_interval=0.01
    )
    monkeypatch.setattr(webapi, "SERVICE", service)
    return converter


def wait_for(client, batch_id, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = client.get(f"/batches/{batch_id}").json()
        if data["state"] not in ("queued", "running"):
            return data
        time.sleep(0.02)
    raise AssertionError("batch did not finish")


def upload(client, parts, conversion_type="to-webp", scale="1"):
    return client.post(
        "/batches",
        files=[("files", p) for p in parts],
        data={"conversion_type": conversion_type, "scale": scale},
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_conversion_types_lists_every_key(client):
    types = {t["key"]: t for t in client.get("/conversion-types").json()}

    assert len(types) == 10
    assert types["to-png"]["implemented"] is True
    assert types["to-docx"]["implemented"] is False


def test_conversion_options_for_mixed_batch(client):
    resp = client.get(
        "/conversion-options",
        params={"media_type": ["image/svg+xml", "image/png"], "conversion_type": "to-webp"},
    )
    data = resp.json()

    assert [o["key"] for o in data["options"]] == ["to-jpg", "to-webp", "to-pdf"]
    assert data["scale_applies"] is True


def test_batch_with_one_bad_file(client):
    resp = upload(
        client,
        [("photo.png", png_bytes((40, 30)), "image/png"), ("empty.png", b"", "image/png")],
    )
    assert resp.status_code == 202
    created = resp.json()
    assert resp.headers["location"] == f"/batches/{created['id']}"
    assert [j["status"] for j in created["jobs"]] == ["pending", "pending"]

    data = wait_for(client, created["id"])

    assert data["state"] == "finished"
    good, bad = data["jobs"]
    assert (good["status"], good["progress"], good["output_name"]) == ("completed", 100, "converted-photo.webp")
    assert (bad["status"], bad["progress"]) == ("error", 0)
    assert bad["error"]

    result = client.get(f"/batches/{created['id']}/jobs/0/result")
    assert result.status_code == 200
    assert result.headers["content-type"] == "image/webp"
    assert "converted-photo.webp" in result.headers["content-disposition"]
    assert Image.open(io.BytesIO(result.content)).size == (40, 30)

    missing = client.get(f"/batches/{created['id']}/jobs/1/result")
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "not_ready"


def test_unsupported_conversion_is_rejected(client):
    resp = upload(client, [("photo.png", png_bytes(), "image/png")], conversion_type="to-docx")

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "unsupported_conversion"
    assert webapi.BATCHES == {}


def test_empty_batch_is_rejected(client):
    resp = client.post("/batches", data={"conversion_type": "to-png"})

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "empty_batch"


def test_invalid_scale_is_rejected(client):
    resp = upload(client, [("a.png", png_bytes(), "image/png")], scale="100")

    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "invalid_scale"


def test_upload_limit(client, monkeypatch):
    monkeypatch.setattr(webapi, "SETTINGS", replace(webapi.SETTINGS, max_upload_mb=0))

    resp = upload(client, [("a.png", png_bytes(), "image/png")])

    assert resp.status_code == 413


def test_unknown_batch(client):
    assert client.get("/batches/nope").status_code == 404
    assert client.post("/batches/nope/cancel").status_code == 404


def test_result_index_out_of_range(client):
    created = upload(client, [("a.png", png_bytes(), "image/png")]).json()
    wait_for(client, created["id"])

    assert client.get(f"/batches/{created['id']}/jobs/5/result").status_code == 404


def test_cancel_finished_batch_keeps_results(client):
    created = upload(client, [("a.png", png_bytes(), "image/png")], conversion_type="to-pdf").json()
    wait_for(client, created["id"])

    resp = client.post(f"/batches/{created['id']}/cancel")

    assert resp.status_code == 202
    assert resp.json()["jobs"][0]["status"] == "completed"
    pdf = client.get(f"/batches/{created['id']}/jobs/0/result")
    assert pdf.content.startswith(b"%PDF-")


def test_batches_run_one_at_a_time(client, slow_converter):
    first = upload(client, [("a.png", b"a", "image/png"), ("b.png", b"b", "image/png")], "to-fake").json()
    second = upload(client, [("c.png", b"c", "image/png"), ("d.png", b"d", "image/png")], "to-fake").json()

    assert wait_for(client, first["id"])["state"] == "finished"
    assert wait_for(client, second["id"])["state"] == "finished"
    assert slow_converter.max_active == 1
    assert slow_converter.calls == ["a.png", "b.png", "c.png", "d.png"]


def test_finished_batch_releases_upload_content(client):
    content = png_bytes()
    created = upload(client, [("photo.png", content, "image/png")]).json()

    data = wait_for(client, created["id"])

    jobs = webapi.BATCHES[created["id"]].batch.jobs
    assert [j.file.content for j in jobs] == [b""]
    assert data["jobs"][0]["size_bytes"] == len(content)
    assert client.get(f"/batches/{created['id']}/jobs/0/result").status_code == 200


def test_delete_finished_batch(client, tmp_path):
    created = upload(client, [("photo.png", png_bytes(), "image/png")]).json()
    wait_for(client, created["id"])
    batch_dir = tmp_path / "batches" / created["id"]
    assert batch_dir.exists()

    resp = client.delete(f"/batches/{created['id']}")

    assert resp.status_code == 204
    assert not batch_dir.exists()
    assert client.get(f"/batches/{created['id']}").status_code == 404


def test_delete_unfinished_batch_is_refused(client, slow_converter):
    created = upload(client, [("a.png", b"a", "image/png"), ("b.png", b"b", "image/png")], "to-fake").json()

    resp = client.delete(f"/batches/{created['id']}")

    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "batch_running"
    wait_for(client, created["id"])
    assert client.delete(f"/batches/{created['id']}").status_code == 204


def test_delete_unknown_batch(client):
    assert client.delete("/batches/nope").status_code == 404
