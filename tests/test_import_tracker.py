"""Tests for the import session state machine."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.db.models import Deck, DeckImport, ImportStatus
from app.services.import_tracker import ImportTracker
from app.utils.exceptions import (
    ImportErrorKind,
    ImportSessionNotFoundError,
    ImportStateError,
)


@pytest.fixture()
def tracker(db_session) -> ImportTracker:
    return ImportTracker(db_session)


def backdate(db_session, session: DeckImport, **delta) -> None:
    session.created_at = datetime.now(timezone.utc) - timedelta(**delta)
    db_session.commit()


def test_create_session_starts_pending(tracker):
    session = tracker.create_session("deck.apkg", 2048)

    assert session.id is not None
    assert session.status == ImportStatus.PENDING
    assert session.cards_imported == 0
    assert session.cards_failed == 0
    assert session.error_log == []


def test_unknown_session_raises_not_found(tracker):
    with pytest.raises(ImportSessionNotFoundError):
        tracker.get_session(999_999)


def test_happy_path_transitions(tracker):
    session = tracker.create_session("deck.apkg", 2048)

    tracker.start_processing(session.id)
    tracker.update_progress(session.id, 50, 1)
    completed = tracker.complete_import(session.id, 100, 3)

    assert completed.status == ImportStatus.COMPLETED
    assert completed.cards_imported == 100
    assert completed.cards_failed == 3
    assert completed.import_duration is not None


def test_update_progress_overwrites_counters(tracker):
    session = tracker.create_session("deck.apkg", 2048)
    tracker.start_processing(session.id)

    tracker.update_progress(session.id, 10, 1)
    updated = tracker.update_progress(session.id, 25, 2)

    assert (updated.cards_imported, updated.cards_failed) == (25, 2)


def test_update_progress_requires_processing(tracker):
    session = tracker.create_session("deck.apkg", 2048)

    with pytest.raises(ImportStateError):
        tracker.update_progress(session.id, 1, 0)


@pytest.mark.parametrize("finish", ["complete", "fail"])
def test_terminal_sessions_reject_further_transitions(tracker, finish):
    session = tracker.create_session("deck.apkg", 2048)
    tracker.start_processing(session.id)
    if finish == "complete":
        tracker.complete_import(session.id, 7, 1)
    else:
        tracker.fail_import(session.id, "boom")
    before = tracker.get_session(session.id)
    snapshot = (before.status, before.cards_imported, before.cards_failed, len(before.error_log))

    with pytest.raises(ImportStateError):
        tracker.complete_import(session.id, 99, 99)
    with pytest.raises(ImportStateError):
        tracker.fail_import(session.id, "again")
    with pytest.raises(ImportStateError):
        tracker.start_processing(session.id)

    after = tracker.get_session(session.id)
    assert (after.status, after.cards_imported, after.cards_failed, len(after.error_log)) == snapshot


def test_fail_import_from_pending_prepends_entry(tracker):
    session = tracker.create_session("deck.apkg", 2048)
    tracker.add_warning(session.id, "first warning")

    failed = tracker.fail_import(
        session.id, "File validation failed", ["too small"], kind=ImportErrorKind.SIZE_ERROR
    )

    assert failed.status == ImportStatus.ERROR
    assert failed.error_log[0]["kind"] == "size_error"
    assert failed.error_log[0]["message"] == "File validation failed"
    assert failed.error_log[0]["details"] == ["too small"]
    assert failed.error_log[1]["kind"] == "warning"


def test_add_warning_never_raises_for_unknown_session(tracker):
    tracker.add_warning(123_456, "lost warning")


def test_add_warning_appends_in_order(tracker):
    session = tracker.create_session("deck.apkg", 2048)

    tracker.add_warning(session.id, "one")
    tracker.add_warning(session.id, "two")

    messages = [entry["message"] for entry in tracker.get_session(session.id).error_log]
    assert messages == ["one", "two"]


def test_add_warnings_appends_batch_in_one_commit(tracker, db_session, monkeypatch):
    session = tracker.create_session("deck.apkg", 2048)
    tracker.add_warning(session.id, "first")
    commits = []
    original = db_session.commit
    monkeypatch.setattr(db_session, "commit", lambda: commits.append(1) or original())

    tracker.add_warnings(session.id, ["second", "third"])
    tracker.add_warnings(session.id, [])

    assert len(commits) == 1
    messages = [entry["message"] for entry in tracker.get_session(session.id).error_log]
    assert messages == ["first", "second", "third"]


def test_import_details_scenario(tracker, db_session):
    session = tracker.create_session("big.apkg", 10_000)
    backdate(db_session, session, seconds=2)
    tracker.start_processing(session.id)
    tracker.update_progress(session.id, 100, 3)
    tracker.complete_import(session.id, 100, 3, warnings=["3 cards skipped"])

    details = tracker.get_import_details(session.id)

    assert details["status"] == "completed"
    assert details["import_stats"]["cards_imported"] == 100
    assert details["import_stats"]["cards_skipped"] == 3
    assert details["processing_time"] > 0
    assert [entry["message"] for entry in details["import_stats"]["warnings"]] == ["3 cards skipped"]
    assert details["import_stats"]["errors"] == []


def test_import_details_include_deck(tracker, db_session):
    session = tracker.create_session("deck.apkg", 2048)
    deck = Deck(name="Polish", file_checksum="f" * 64, anki_import_id=session.id)
    db_session.add(deck)
    db_session.commit()

    details = tracker.get_import_details(session.id)

    assert details["deck_id"] == deck.id
    assert details["deck_name"] == "Polish"


def test_check_for_duplicates(tracker, db_session):
    session = tracker.create_session("deck.apkg", 2048)
    tracker.start_processing(session.id)
    tracker.complete_import(session.id, 1, 0)
    db_session.add(Deck(name="Polish", file_checksum="a" * 64, anki_import_id=session.id))
    db_session.commit()

    same_content = tracker.check_for_duplicates("renamed.apkg", "a" * 64)
    same_name = tracker.check_for_duplicates("deck.apkg", "b" * 64)

    assert same_content.has_duplicate_checksum
    assert not same_content.has_duplicate_filename
    assert same_name.has_duplicate_filename
    assert not same_name.has_duplicate_checksum
    assert same_name.duplicate_import.id == session.id


def test_import_history_filters_and_limits(tracker):
    first = tracker.create_session("one.apkg", 100)
    tracker.fail_import(first.id, "bad")
    tracker.create_session("two.apkg", 100)
    tracker.create_session("three.apkg", 100)

    assert [item.filename for item in tracker.get_import_history(status=ImportStatus.ERROR)] == ["one.apkg"]
    assert len(tracker.get_import_history(limit=2)) == 2


def test_import_statistics(tracker):
    ok = tracker.create_session("ok.apkg", 1000)
    tracker.start_processing(ok.id)
    tracker.complete_import(ok.id, 10, 2)
    bad = tracker.create_session("bad.apkg", 500)
    tracker.fail_import(bad.id, "nope")

    stats = tracker.get_import_statistics()

    assert stats["total_imports"] == 2
    assert stats["successful_imports"] == 1
    assert stats["failed_imports"] == 1
    assert stats["total_cards_imported"] == 10
    assert stats["total_cards_failed"] == 2
    assert stats["total_file_size"] == 1500
    assert stats["success_rate"] == 50.0


def test_cleanup_removes_only_old_terminal_sessions(tracker, db_session):
    old_done = tracker.create_session("old.apkg", 100)
    tracker.fail_import(old_done.id, "bad")
    old_pending = tracker.create_session("stuck.apkg", 100)
    recent = tracker.create_session("recent.apkg", 100)
    tracker.fail_import(recent.id, "bad")
    backdate(db_session, tracker.get_session(old_done.id), days=45)
    backdate(db_session, tracker.get_session(old_pending.id), days=45)

    deleted = tracker.cleanup_old_sessions(days_old=30)

    assert deleted == 1
    remaining = set(db_session.scalars(select(DeckImport.id)))
    assert remaining == {old_pending.id, recent.id}


def test_cleanup_unlinks_decks_of_removed_sessions(tracker, db_session):
    old = tracker.create_session("old.apkg", 100)
    tracker.fail_import(old.id, "bad")
    deck = Deck(name="Survivor", anki_import_id=old.id)
    db_session.add(deck)
    db_session.commit()
    backdate(db_session, tracker.get_session(old.id), days=45)

    assert tracker.cleanup_old_sessions(days_old=30) == 1

    db_session.expire_all()
    survivor = db_session.get(Deck, deck.id)
    assert survivor is not None
    assert survivor.anki_import_id is None
    assert db_session.get(DeckImport, old.id) is None


def test_cleanup_without_stale_sessions_is_a_no_op(tracker):
    tracker.create_session("fresh.apkg", 100)

    assert tracker.cleanup_old_sessions(days_old=30) == 0
