"""create deck_imports, decks and cards tables

Revision ID: 0001_deck_import
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_deck_import"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "deck_imports",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("cards_imported", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cards_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("import_duration", sa.Float(), nullable=True),
        sa.Column("error_log", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_deck_imports"),
    )
    op.create_index(
        "ix_deck_imports_status_created_at", "deck_imports", ["status", "created_at"], unique=False
    )

    op.create_table(
        "decks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("anki_metadata", sa.JSON(), nullable=True),
        sa.Column("import_status", sa.String(length=20), nullable=True),
        sa.Column("file_checksum", sa.String(length=64), nullable=True),
        sa.Column(
            "anki_import_id",
            sa.Integer(),
            sa.ForeignKey(
                "deck_imports.id", ondelete="SET NULL", name="fk_decks_anki_import_id_deck_imports"
            ),
            nullable=True,
        ),
        sa.Column("import_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_decks"),
    )
    op.create_index("ix_decks_import_status", "decks", ["import_status"], unique=False)
    op.create_index("ix_decks_anki_import_id", "decks", ["anki_import_id"], unique=False)
    # Closes the race between two concurrent imports of identical bytes
    op.create_index("ix_decks_file_checksum", "decks", ["file_checksum"], unique=True)

    op.create_table(
        "cards",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "deck_id",
            sa.Integer(),
            sa.ForeignKey("decks.id", ondelete="CASCADE", name="fk_cards_deck_id_decks"),
            nullable=False,
        ),
        sa.Column("front", sa.Text(), nullable=False),
        sa.Column("back", sa.Text(), nullable=False),
        sa.Column("difficulty_level", sa.String(length=20), nullable=False),
        sa.Column("difficulty_score", sa.Float(), nullable=False),
        sa.Column("topic_category", sa.String(length=50), nullable=True),
        sa.Column("tags", sa.Text(), nullable=True),
        sa.Column("anki_note_id", sa.String(length=50), nullable=True),
        sa.Column("anki_model", sa.String(length=100), nullable=True),
        sa.Column("anki_fields", postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column("anki_tags", postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column("media_files", postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column("import_date", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_cards"),
    )
    op.create_index("ix_cards_deck_id", "cards", ["deck_id"], unique=False)
    op.create_index("ix_cards_anki_note_id", "cards", ["anki_note_id"], unique=False)
    op.create_index("ix_cards_anki_model", "cards", ["anki_model"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_cards_anki_model", table_name="cards")
    op.drop_index("ix_cards_anki_note_id", table_name="cards")
    op.drop_index("ix_cards_deck_id", table_name="cards")
    op.drop_table("cards")
    op.drop_index("ix_decks_file_checksum", table_name="decks")
    op.drop_index("ix_decks_anki_import_id", table_name="decks")
    op.drop_index("ix_decks_import_status", table_name="decks")
    op.drop_table("decks")
    op.drop_index("ix_deck_imports_status_created_at", table_name="deck_imports")
    op.drop_table("deck_imports")
