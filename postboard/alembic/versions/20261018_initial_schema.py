"""Initial schema: users, media, tags, posts, comments and their relation tables.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), nullable=False),
        sa.Column("sa_orm_sentinel", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        *_audit_columns(),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("avatar_url", sa.String(1024), nullable=True),
        sa.Column("avatar", sa.String(512), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "media",
        *_audit_columns(),
        sa.Column("alt", sa.String(500), nullable=True),
        sa.Column("key", sa.String(512), nullable=True),
        sa.Column("url", sa.String(1024), nullable=True),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("mime_type", sa.String(128), nullable=False),
        sa.Column("filesize", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_media_key", "media", ["key"])

    op.create_table(
        "tags",
        *_audit_columns(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "posts",
        *_audit_columns(),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("image_id", sa.BigInteger(), nullable=True),
        sa.Column("image_url", sa.String(1024), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["image_id"], ["media.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_posts_user_id", "posts", ["user_id"])

    op.create_table(
        "comments",
        *_audit_columns(),
        sa.Column("post_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("parent_id", sa.BigInteger(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["parent_id"], ["comments.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_comments_post_id", "comments", ["post_id"])
    op.create_index("ix_comments_user_id", "comments", ["user_id"])
    op.create_index("ix_comments_parent_id", "comments", ["parent_id"])

    op.create_table(
        "posts_rels",
        *_audit_columns(),
        sa.Column("parent_id", sa.BigInteger(), nullable=False),
        sa.Column("path", sa.String(32), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("tags_id", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["parent_id"], ["posts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tags_id"], ["tags.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("parent_id", "user_id", "path", name="uq_posts_rels_parent_user_path"),
        sa.UniqueConstraint("parent_id", "tags_id", "path", name="uq_posts_rels_parent_tag_path"),
        sa.CheckConstraint(
            "(path = 'tags' AND tags_id IS NOT NULL) OR (path <> 'tags' AND user_id IS NOT NULL)",
            name="ck_posts_rels_path_target",
        ),
    )
    op.create_index("ix_posts_rels_parent_path", "posts_rels", ["parent_id", "path"])

    op.create_table(
        "comments_rels",
        *_audit_columns(),
        sa.Column("parent_id", sa.BigInteger(), nullable=False),
        sa.Column("path", sa.String(32), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["parent_id"], ["comments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("parent_id", "user_id", "path", name="uq_comments_rels_parent_user_path"),
        sa.CheckConstraint("user_id IS NOT NULL", name="ck_comments_rels_user"),
    )
    op.create_index("ix_comments_rels_parent_path", "comments_rels", ["parent_id", "path"])


def downgrade() -> None:
    op.drop_index("ix_comments_rels_parent_path", table_name="comments_rels")
    op.drop_table("comments_rels")
    op.drop_index("ix_posts_rels_parent_path", table_name="posts_rels")
    op.drop_table("posts_rels")
    op.drop_index("ix_comments_parent_id", table_name="comments")
    op.drop_index("ix_comments_user_id", table_name="comments")
    op.drop_index("ix_comments_post_id", table_name="comments")
    op.drop_table("comments")
    op.drop_index("ix_posts_user_id", table_name="posts")
    op.drop_table("posts")
    op.drop_table("tags")
    op.drop_index("ix_media_key", table_name="media")
    op.drop_table("media")
    op.drop_table("users")
