"""Conversion of parsed package records into the internal card schema.

Everything here is a pure function of the parse result; the only
non-deterministic value is the date embedded in the deck description.
"""
from __future__ import annotations

import re
from datetime import date
from pathlib import PurePath
from typing import Iterable, List, Optional, Sequence, Tuple

from app.core.apkg.records import (
    CardProvenance,
    CardRecord,
    ConversionResult,
    ConvertedCard,
    DeckDraft,
    MediaRecord,
    ParseResult,
    SessionSeed,
)
from app.utils.exceptions import PartialCardFailure

FALLBACK_DECK_NAME = "Imported Anki Deck"

# Checked in order; the first category containing any keyword as a substring wins.
TOPIC_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("verbs", ("czas", "verb")),
    ("numbers", ("liczba", "number")),
    ("colors", ("kolor", "color")),
    ("food", ("jedzenie", "food")),
    ("family", ("rodzina", "family")),
    ("home", ("dom", "house")),
    ("work", ("praca", "work")),
    ("education", ("szkoła", "school")),
)

_MEDIA_REFERENCE_RE = re.compile(
    r"\[sound:([^\]]+)\]|<img[^>]+src=['\"]([^'\"]+)['\"][^>]*>", re.IGNORECASE
)


def estimate_difficulty(card: CardRecord) -> str:
    """Bucket a card by its review history, falling back to text length."""
    stats = card.scheduling
    if stats.lapse_count > 3:
        return "advanced"
    if stats.interval > 30:
        return "beginner"
    if stats.interval > 7:
        return "intermediate"

    text_length = len(card.front + card.back)
    if text_length > 200:
        return "advanced"
    if text_length > 100:
        return "intermediate"
    return "beginner"


def score_difficulty(front: str, back: str, tags: Iterable[str] = ()) -> float:
    """Numeric difficulty on roughly a 0.5-4 scale from phrase shape and tags."""
    words = front.lower().split()
    score = 1.0

    if len(words) > 5:
        score += 0.5
    if words and sum(len(word) for word in words) / len(words) > 7:
        score += 0.3

    tag_text = " ".join(tags).lower()
    if "advanced" in tag_text or "difficult" in tag_text:
        score += 1.0
    elif "intermediate" in tag_text:
        score += 0.5
    elif "beginner" in tag_text or "basic" in tag_text:
        score = max(score - 0.3, 0.5)

    if "conjugation" in tag_text or "declension" in tag_text:
        score += 0.4

    return round(score, 1)


def guess_topic(front: str, back: str) -> str:
    text = f"{front} {back}".lower()
    for topic, keywords in TOPIC_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return topic
    return "general"


def referenced_media(fields: Sequence[str], media: Sequence[MediaRecord]) -> Tuple[str, ...]:
    """Filenames referenced from the raw note fields that the package declares."""
    known = {record.filename for record in media}
    found: List[str] = []
    for field in fields:
        for match in _MEDIA_REFERENCE_RE.finditer(field):
            name = match.group(1) or match.group(2)
            if name in known and name not in found:
                found.append(name)
    return tuple(found)


def generate_deck_name(parse_result: ParseResult) -> str:
    deck_info = parse_result.deck_info
    if deck_info and deck_info.decks:
        return deck_info.decks[0].name or FALLBACK_DECK_NAME

    filename = parse_result.metadata.get("original_filename") or ""
    stem = PurePath(filename).stem if filename else ""
    cleaned = re.sub(r"[^A-Za-z0-9]+", " ", stem).strip()
    return cleaned or FALLBACK_DECK_NAME


def generate_deck_description(card_count: int, media_count: int, on: Optional[date] = None) -> str:
    imported_on = (on or date.today()).isoformat()
    description = f"Imported from Anki on {imported_on}. Contains {card_count} cards"
    if media_count > 0:
        description += f" with {media_count} media files"
    return description + "."


def convert_card(card: CardRecord, media: Sequence[MediaRecord]) -> ConvertedCard:
    note = card.note
    tags = note.tags if note else ()
    fields = note.fields if note else ()
    return ConvertedCard(
        front=card.front,
        back=card.back,
        difficulty=estimate_difficulty(card),
        difficulty_score=score_difficulty(card.front, card.back, tags),
        topic=guess_topic(card.front, card.back),
        provenance=CardProvenance(
            note_id=str(card.note_id),
            model_id=str(note.model_id) if note else "unknown",
            tags=tags,
            raw_fields=fields,
            media_filenames=referenced_media(fields, media),
        ),
    )


def convert_to_internal_format(
    parse_result: ParseResult, target_deck_name: Optional[str] = None
) -> ConversionResult:
    """Turn a successful parse into a deck draft plus converted cards."""
    converted: List[ConvertedCard] = []
    failures: List[PartialCardFailure] = []

    for card in parse_result.cards:
        if not card.front or not card.back:
            missing = "front" if not card.front else "back"
            failures.append(
                PartialCardFailure(
                    f"Card {card.id} has an empty {missing}",
                    {"card_id": card.id, "note_id": card.note_id, "missing": missing},
                )
            )
            continue
        converted.append(convert_card(card, parse_result.media))

    metadata = dict(parse_result.metadata)
    if parse_result.deck_info:
        metadata["decks"] = [
            {"id": deck.id, "name": deck.name, "description": deck.description}
            for deck in parse_result.deck_info.decks
        ]

    deck = DeckDraft(
        name=target_deck_name or generate_deck_name(parse_result),
        description=generate_deck_description(len(parse_result.cards), len(parse_result.media)),
        checksum=metadata.get("file_checksum", ""),
        anki_metadata=metadata,
    )
    seed = SessionSeed(
        filename=metadata.get("original_filename", ""),
        file_size=metadata.get("file_size", 0),
        cards_imported=len(converted),
        cards_failed=len(failures),
    )
    return ConversionResult(deck=deck, cards=converted, failures=failures, session_seed=seed)
