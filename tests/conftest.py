"""Pytest fixtures for deck import tests."""

import io
import json
import os
import sqlite3
import zipfile
from collections.abc import Generator

os.environ.setdefault("DATABASE_URL", "sqlite:///./deck_import_test.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db
from app.db import models  # noqa: F401  # Imported for side effects
from app.db.base import Base
from app.db.models import Card, Deck, DeckImport
from app.db.session import enable_sqlite_savepoints
from app.main import create_app

FIELD_SEPARATOR = "\x1f"
DEFAULT_DECK_ID = 1


@pytest.fixture(scope="session")
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(db_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=db_engine, expire_on_commit=False
    )
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.query(Card).delete()
        db.query(Deck).delete()
        db.query(DeckImport).delete()
        db.commit()
        db.close()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client


def _write_collection(path, notes, cards, decks, conf) -> None:
    connection = sqlite3.connect(path)
    try:
        connection.executescript(
            """
            CREATE TABLE col (
                id integer primary key, crt integer, mod integer, scm integer,
                ver integer, dty integer, usn integer, ls integer,
                conf text, models text, decks text, dconf text, tags text
            );
            CREATE TABLE notes (
                id integer primary key, guid text, mid integer, mod integer,
                usn integer, tags text, flds text, sfld text, csum integer,
                flags integer, data text
            );
            CREATE TABLE cards (
                id integer primary key, nid integer, did integer, ord integer,
                mod integer, usn integer, type integer, queue integer,
                due integer, ivl integer, factor integer, reps integer,
                lapses integer, left integer, odue integer, odid integer,
                flags integer, data text
            );
            """
        )
        connection.execute(
            "INSERT INTO col VALUES (1, 1700000000, 1700000500, 0, 11, 0, 0, 0, ?, '{}', ?, '{}', '{}')",
            (conf, decks),
        )
        for note in notes:
            fields = note["fields"]
            flds = fields if isinstance(fields, str) else FIELD_SEPARATOR.join(fields)
            sort_field = note.get("sfld", flds.split(FIELD_SEPARATOR)[0])
            connection.execute(
                "INSERT INTO notes VALUES (?, ?, ?, 1700000100, 0, ?, ?, ?, 0, 0, '')",
                (
                    note["id"],
                    f"guid{note['id']}",
                    note.get("mid", 1111),
                    note.get("tags", ""),
                    flds,
                    sort_field,
                ),
            )
        for card in cards:
            connection.execute(
                "INSERT INTO cards VALUES (?, ?, ?, ?, 1700000200, 0, ?, ?, 0, ?, 2500, ?, ?, 0, 0, 0, 0, '')",
                (
                    card["id"],
                    card["nid"],
                    card.get("did", DEFAULT_DECK_ID),
                    card.get("ord", 0),
                    card.get("type", 2),
                    card.get("queue", 2),
                    card.get("ivl", 0),
                    card.get("reps", 0),
                    card.get("lapses", 0),
                ),
            )
        connection.commit()
    finally:
        connection.close()


@pytest.fixture()
def build_apkg(tmp_path):
    """Factory producing the bytes of a real ``.apkg`` package.

    ``notes`` are dicts with ``id`` and ``fields`` (list or raw separator-joined
    string) plus optional ``tags``, ``sfld`` and ``mid``. One card per note is
    generated unless ``cards`` is given.
    """

    counter = {"value": 0}

    def build(
        notes=None,
        cards=None,
        decks=None,
        conf='{"nextPos": 1}',
        media=None,
        media_index=None,
        include_collection=True,
        collection_bytes=None,
    ) -> bytes:
        counter["value"] += 1
        if notes is None:
            notes = [
                {"id": 100 + index, "fields": [f"front {index}", f"back {index}"]}
                for index in range(3)
            ]
        if cards is None:
            cards = [{"id": 1000 + note["id"], "nid": note["id"]} for note in notes]
        if decks is None:
            decks = json.dumps(
                {str(DEFAULT_DECK_ID): {"name": "Polish Basics", "desc": "Common words"}}
            )

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_STORED) as archive:
            if include_collection:
                if collection_bytes is None:
                    path = tmp_path / f"collection_{counter['value']}.anki2"
                    _write_collection(str(path), notes, cards, decks, conf)
                    archive.writestr("collection.anki2", path.read_bytes())
                else:
                    archive.writestr("collection.anki2", collection_bytes)
            else:
                archive.writestr("notes.txt", "x" * 512)
            media = media or {}
            if media_index is not None:
                archive.writestr("media", media_index)
            elif media:
                archive.writestr("media", json.dumps({key: name for key, (name, _) in media.items()}))
            for key, (_, payload) in media.items():
                archive.writestr(key, payload)
        return buffer.getvalue()

    return build


@pytest.fixture()
def sample_notes():
    return [
        {"id": 1, "fields": ["dom", "house"], "tags": "polish nouns"},
        {"id": 2, "fields": ["<b>jeść</b>", "to eat<br>verb"], "tags": "polish verbs"},
        {"id": 3, "fields": ["czerwony", "red [sound:red.mp3]"], "tags": "colors"},
    ]
