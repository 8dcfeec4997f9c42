"""Create articles and content chunks."""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql as pg

# revision identifiers, used by Alembic.
revision = "0001_create_articles_and_chunks"
down_revision = None
branch_labels = None
depends_on = None

EMBEDDING_DIM = 1536


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "articles",
        sa.Column("id", pg.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("content_variants", pg.JSONB(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("word_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_chunked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("chunking_claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_onupdate=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_articles_is_chunked", "articles", ["is_chunked"])

    op.create_table(
        "content_chunks",
        sa.Column("id", pg.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("article_id", pg.UUID(as_uuid=True), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("word_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("chunk_type", sa.String(length=20), nullable=False, server_default="content"),
        sa.Column("embedding", Vector(EMBEDDING_DIM), nullable=True),
        sa.Column("metadata", pg.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["article_id"], ["articles.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("article_id", "chunk_index", name="uq_content_chunks_article_index"),
        sa.CheckConstraint(
            "chunk_type IN ('title', 'summary', 'content')", name="ck_content_chunks_chunk_type"
        ),
    )
    op.create_index("ix_content_chunks_article_id", "content_chunks", ["article_id"])
    op.create_index(
        "ix_content_chunks_embedding_ivfflat",
        "content_chunks",
        ["embedding"],
        postgresql_using="ivfflat",
        postgresql_with={"lists": 100},
        postgresql_ops={"embedding": "vector_cosine_ops"},
    )


def downgrade() -> None:
    op.drop_index("ix_content_chunks_embedding_ivfflat", table_name="content_chunks")
    op.drop_index("ix_content_chunks_article_id", table_name="content_chunks")
    op.drop_table("content_chunks")

    op.drop_index("ix_articles_is_chunked", table_name="articles")
    op.drop_table("articles")
