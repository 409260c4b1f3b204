import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "videos",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("channel_id", sa.String(), nullable=False),
        sa.Column("title", sa.String()),
        sa.Column("description", sa.String()),
        sa.Column("tags", sa.JSON()),
        sa.Column("cover_image", sa.String()),
        sa.Column("ab_test_titles", sa.JSON()),
        sa.Column("ab_test_thumbnails", sa.JSON()),
        sa.Column("published_video_id", sa.String()),
        sa.Column("published_at", sa.DateTime(timezone=True)),
        sa.Column("active_version", sa.Integer()),
        sa.Column("is_draft", sa.Boolean()),
        sa.Column("packaging_revision", sa.Integer()),
    )
    op.create_table(
        "packaging_versions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("video_id", sa.String(), sa.ForeignKey("videos.id"), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("configuration_snapshot", sa.JSON()),
        sa.Column("active_periods", sa.JSON()),
        sa.Column("restored_at", sa.BigInteger()),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )
    op.create_table(
        "traffic_snapshots",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("channel_id", sa.String(), nullable=False),
        sa.Column("video_id", sa.String(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("storage_path", sa.String()),
        sa.Column("sources", sa.JSON()),
        sa.Column("total_row", sa.JSON()),
        sa.Column("summary", sa.JSON()),
        sa.Column("label", sa.String()),
        sa.Column("active_start", sa.BigInteger()),
        sa.Column("active_end", sa.BigInteger()),
    )
    op.create_index(
        "idx_traffic_snapshots_video",
        "traffic_snapshots",
        ["owner_id", "channel_id", "video_id"],
    )
    op.create_table(
        "traffic_data",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("channel_id", sa.String(), nullable=False),
        sa.Column("video_id", sa.String(), nullable=False),
        sa.Column("sources", sa.JSON()),
        sa.Column("total_row", sa.JSON()),
        sa.Column("last_updated", sa.BigInteger()),
        sa.UniqueConstraint("owner_id", "channel_id", "video_id"),
    )
    op.create_table(
        "suggested_videos",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("owner_channel_id", sa.String(), nullable=False),
        sa.Column("video_id", sa.String(), nullable=False),
        sa.Column("title", sa.String()),
        sa.Column("channel_id", sa.String()),
        sa.Column("channel_title", sa.String()),
        sa.Column("channel_avatar", sa.String()),
        sa.Column("thumbnail", sa.String()),
        sa.Column("published_at", sa.String()),
        sa.Column("view_count", sa.String()),
        sa.Column("duration", sa.String()),
        sa.Column("last_updated", sa.BigInteger()),
        sa.UniqueConstraint("owner_id", "owner_channel_id", "video_id"),
    )


def downgrade() -> None:
    op.drop_table("suggested_videos")
    op.drop_table("traffic_data")
    op.drop_index("idx_traffic_snapshots_video", table_name="traffic_snapshots")
    op.drop_table("traffic_snapshots")
    op.drop_table("packaging_versions")
    op.drop_table("videos")
