"""API tests for deck import and deck browsing endpoints."""
from __future__ import annotations

from fastapi import status

from app.api.v1.endpoints import deck_imports

UPLOAD_URL = "/api/v1/deck-imports"


def upload(client, raw: bytes, filename: str = "deck.apkg", **form):
    data = {key: str(value).lower() if isinstance(value, bool) else value for key, value in form.items()}
    return client.post(
        UPLOAD_URL,
        files={"file": (filename, raw, "application/octet-stream")},
        data=data,
    )


def test_upload_imports_deck(client, build_apkg, sample_notes):
    response = upload(client, build_apkg(notes=sample_notes), "polish.apkg")

    assert response.status_code == status.HTTP_200_OK
    payload = response.json()
    assert payload["success"] is True
    assert payload["deck_id"] is not None
    assert payload["import_stats"]["cards_imported"] == 3
    assert payload["import_stats"]["cards_skipped"] == 0


def test_upload_runs_import_in_threadpool(client, build_apkg, monkeypatch):
    offloaded = []
    real_run_in_threadpool = deck_imports.run_in_threadpool

    async def record(func, *args, **kwargs):
        offloaded.append(func.__name__)
        return await real_run_in_threadpool(func, *args, **kwargs)

    monkeypatch.setattr(deck_imports, "run_in_threadpool", record)

    response = upload(client, build_apkg())

    assert response.status_code == status.HTTP_200_OK
    assert offloaded == ["import_deck"]


def test_validate_only_upload(client, build_apkg):
    response = upload(client, build_apkg(), validate_only=True)

    assert response.status_code == status.HTTP_200_OK
    payload = response.json()
    assert payload["validate_only"] is True
    assert payload["deck_id"] is None


def test_tiny_upload_is_413(client):
    response = upload(client, b"x" * 40, "x.apkg")

    assert response.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    detail = response.json()["detail"]
    assert detail["success"] is False
    assert detail["error"] == "size_error"
    assert "import_id" in detail["details"]


def test_non_zip_upload_is_422(client):
    response = upload(client, b"plain text, not an archive " * 20)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["detail"]["error"] == "corrupt_archive"


def test_duplicate_upload_is_409(client, build_apkg):
    raw = build_apkg()
    assert upload(client, raw).status_code == status.HTTP_200_OK

    response = upload(client, raw, "again.apkg")

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["detail"]["error"] == "duplicate_import"


def test_import_details_and_history(client, build_apkg):
    import_id = upload(client, build_apkg()).json()["import_id"]
    upload(client, b"x" * 40, "x.apkg")

    details = client.get(f"{UPLOAD_URL}/{import_id}")
    assert details.status_code == status.HTTP_200_OK
    body = details.json()
    assert body["status"] == "completed"
    assert body["deck_name"] == "Polish Basics"
    assert body["import_stats"]["cards_imported"] == 3

    history = client.get(UPLOAD_URL, params={"status": "error"})
    assert history.status_code == status.HTTP_200_OK
    assert [item["filename"] for item in history.json()] == ["x.apkg"]


def test_history_rejects_unknown_status(client):
    response = client.get(UPLOAD_URL, params={"status": "exploded"})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_unknown_import_is_404(client):
    response = client.get(f"{UPLOAD_URL}/424242")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["detail"]["error"] == "not_found"


def test_statistics_endpoint(client, build_apkg):
    upload(client, build_apkg())
    upload(client, b"x" * 40, "x.apkg")

    stats = client.get(f"{UPLOAD_URL}/statistics").json()

    assert stats["total_imports"] == 2
    assert stats["successful_imports"] == 1
    assert stats["failed_imports"] == 1


def test_deck_endpoint_returns_metadata(client, build_apkg):
    deck_id = upload(client, build_apkg(), "polish.apkg").json()["deck_id"]

    response = client.get(f"/api/v1/decks/{deck_id}")

    assert response.status_code == status.HTTP_200_OK
    deck = response.json()
    assert deck["card_count"] == 3
    assert deck["import_status"] == "completed"
    assert deck["anki_metadata"]["version"] == "11"
    assert deck["anki_metadata"]["original_filename"] == "polish.apkg"
    assert deck["anki_metadata"]["source_decks"][0]["name"] == "Polish Basics"


def test_cards_provenance_only_on_request(client, build_apkg, sample_notes):
    deck_id = upload(client, build_apkg(notes=sample_notes)).json()["deck_id"]

    plain = client.get(f"/api/v1/decks/{deck_id}/cards").json()
    detailed = client.get(
        f"/api/v1/decks/{deck_id}/cards", params={"include_provenance": "true"}
    ).json()

    assert len(plain) == 3
    assert all("provenance" not in card for card in plain)
    assert detailed[0]["provenance"]["note_id"] == "1"
    assert detailed[0]["provenance"]["original_fields"] == ["dom", "house"]
    assert detailed[1]["provenance"]["tags"] == ["polish", "verbs"]


def test_unknown_deck_is_404(client):
    response = client.get("/api/v1/decks/31337")

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_health(client):
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "healthy"
