"""Tournament enrollment schema: tournaments, sub-events, enrollments, waiting list, carts and synced draws.

Revision ID: 001_enrollment_schema
Revises:
"""

from alembic import op
import sqlalchemy as sa


revision = "001_enrollment_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # -----------------------------------------------------------------------
    # 1. Tournaments and players
    # -----------------------------------------------------------------------
    op.create_table(
        "tournament_event",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("visual_code", sa.String(), nullable=True),
        sa.Column("first_day", sa.Date(), nullable=True),
        sa.Column("phase", sa.String(), nullable=False, server_default="DRAFT"),
        sa.Column("enrollment_open_date", sa.DateTime(), nullable=True),
        sa.Column("enrollment_close_date", sa.DateTime(), nullable=True),
        sa.Column("allow_guest_enrollments", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_sync", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_tournament_event_visual_code", "tournament_event", ["visual_code"], unique=True)

    op.create_table(
        "player",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("member_id", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("gender", sa.String(), nullable=True),
        sa.Column("level_single", sa.Integer(), nullable=True),
        sa.Column("level_double", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_player_member_id", "player", ["member_id"], unique=True)

    # -----------------------------------------------------------------------
    # 2. Sub-events with enrollment control and denormalized counters
    # -----------------------------------------------------------------------
    op.create_table(
        "tournament_sub_event",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("tournament_event.id"), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("visual_code", sa.String(), nullable=True),
        sa.Column("game_type", sa.String(), nullable=False, server_default="S"),
        sa.Column("event_type", sa.String(), nullable=False, server_default="M"),
        sa.Column("level", sa.Integer(), nullable=True),
        sa.Column("min_level", sa.Integer(), nullable=True),
        sa.Column("max_level", sa.Integer(), nullable=True),
        sa.Column("max_entries", sa.Integer(), nullable=True),
        sa.Column("waiting_list_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("enrollment_phase", sa.String(), nullable=False, server_default="DRAFT"),
        sa.Column("enrollment_open_date", sa.DateTime(), nullable=True),
        sa.Column("enrollment_close_date", sa.DateTime(), nullable=True),
        sa.Column("current_enrollment_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("confirmed_enrollment_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("waiting_list_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("auto_promote_from_waiting_list", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("max_waiting_list_size", sa.Integer(), nullable=True),
        sa.Column("requires_approval", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("allow_guest_enrollments", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("enrollment_notes", sa.String(), nullable=True),
        sa.Column("last_sync", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("event_id", "visual_code", name="uq_sub_event_visual_code"),
        sa.CheckConstraint("max_entries IS NULL OR max_entries > 0", name="ck_sub_event_max_entries_positive"),
        sa.CheckConstraint(
            "current_enrollment_count >= 0 AND confirmed_enrollment_count >= 0 AND waiting_list_count >= 0",
            name="ck_sub_event_counts_non_negative",
        ),
    )
    op.create_index("ix_tournament_sub_event_event_id", "tournament_sub_event", ["event_id"])
    op.create_index("ix_tournament_sub_event_visual_code", "tournament_sub_event", ["visual_code"])
    op.create_index("ix_tournament_sub_event_enrollment_phase", "tournament_sub_event", ["enrollment_phase"])

    # -----------------------------------------------------------------------
    # 3. Carts (enrollment sessions)
    # -----------------------------------------------------------------------
    op.create_table(
        "enrollment_session",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("session_key", sa.String(), nullable=False),
        sa.Column("tournament_event_id", sa.Integer(), sa.ForeignKey("tournament_event.id"), nullable=False),
        sa.Column("player_id", sa.Integer(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("total_sub_events", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_enrollment_session_session_key", "enrollment_session", ["session_key"], unique=True)
    op.create_index("ix_enrollment_session_tournament_event_id", "enrollment_session", ["tournament_event_id"])
    op.create_index("ix_enrollment_session_player_id", "enrollment_session", ["player_id"])
    op.create_index("ix_enrollment_session_status", "enrollment_session", ["status"])

    op.create_table(
        "enrollment_session_item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("enrollment_session.id"), nullable=False),
        sa.Column("sub_event_id", sa.Integer(), sa.ForeignKey("tournament_sub_event.id"), nullable=False),
        sa.Column("preferred_partner_id", sa.Integer(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("guest_name", sa.String(), nullable=True),
        sa.Column("guest_email", sa.String(), nullable=True),
        sa.Column("guest_phone", sa.String(), nullable=True),
        sa.Column("validation_status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("validation_errors", sa.JSON(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("session_id", "sub_event_id", name="uq_session_item_sub_event"),
    )
    op.create_index("ix_enrollment_session_item_session_id", "enrollment_session_item", ["session_id"])

    # -----------------------------------------------------------------------
    # 4. Enrollments and waiting-list audit log
    # -----------------------------------------------------------------------
    op.create_table(
        "tournament_enrollment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sub_event_id", sa.Integer(), sa.ForeignKey("tournament_sub_event.id"), nullable=False),
        sa.Column("player_id", sa.Integer(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("preferred_partner_id", sa.Integer(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("confirmed_partner_id", sa.Integer(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("is_guest", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("guest_name", sa.String(), nullable=True),
        sa.Column("guest_email", sa.String(), nullable=True),
        sa.Column("guest_phone", sa.String(), nullable=True),
        sa.Column("waiting_list_position", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("enrollment_session.id"), nullable=True),
        sa.Column("enrollment_source", sa.String(), nullable=False, server_default="MANUAL"),
        sa.Column("promoted_at", sa.DateTime(), nullable=True),
        sa.Column("promoted_from_waiting_list", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("original_waiting_list_position", sa.Integer(), nullable=True),
        sa.Column("requires_approval", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approved_by", sa.Integer(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.String(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("withdrawn_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("sub_event_id", "player_id", name="uq_enrollment_sub_event_player"),
        sa.CheckConstraint(
            "waiting_list_position IS NULL OR waiting_list_position > 0",
            name="ck_enrollment_waiting_list_position_positive",
        ),
    )
    op.create_index("ix_tournament_enrollment_sub_event_id", "tournament_enrollment", ["sub_event_id"])
    op.create_index("ix_tournament_enrollment_player_id", "tournament_enrollment", ["player_id"])
    op.create_index("ix_tournament_enrollment_status", "tournament_enrollment", ["status"])

    op.create_table(
        "waiting_list_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("enrollment_id", sa.Integer(), sa.ForeignKey("tournament_enrollment.id"), nullable=False),
        sa.Column("sub_event_id", sa.Integer(), sa.ForeignKey("tournament_sub_event.id"), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("previous_position", sa.Integer(), nullable=True),
        sa.Column("new_position", sa.Integer(), nullable=True),
        sa.Column("triggered_by", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_waiting_list_log_enrollment_id", "waiting_list_log", ["enrollment_id"])
    op.create_index("ix_waiting_list_log_sub_event_id", "waiting_list_log", ["sub_event_id"])

    # -----------------------------------------------------------------------
    # 5. Synced draws, entries, games and standings
    # -----------------------------------------------------------------------
    op.create_table(
        "tournament_draw",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sub_event_id", sa.Integer(), sa.ForeignKey("tournament_sub_event.id"), nullable=False),
        sa.Column("visual_code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False, server_default="KO"),
        sa.Column("size", sa.Integer(), nullable=True),
        sa.Column("risers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fallers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_sync", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("sub_event_id", "visual_code", name="uq_draw_sub_event_visual_code"),
    )
    op.create_index("ix_tournament_draw_sub_event_id", "tournament_draw", ["sub_event_id"])
    op.create_index("ix_tournament_draw_visual_code", "tournament_draw", ["visual_code"])

    op.create_table(
        "entry",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("draw_id", sa.Integer(), sa.ForeignKey("tournament_draw.id"), nullable=False),
        sa.Column("sub_event_id", sa.Integer(), sa.ForeignKey("tournament_sub_event.id"), nullable=True),
        sa.Column("player1_id", sa.Integer(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("player2_id", sa.Integer(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("entry_type", sa.String(), nullable=False, server_default="tournament"),
    )
    op.create_index("ix_entry_draw_id", "entry", ["draw_id"])
    op.create_index("ix_entry_sub_event_id", "entry", ["sub_event_id"])

    op.create_table(
        "game",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("visual_code", sa.String(), nullable=False),
        sa.Column("draw_id", sa.Integer(), sa.ForeignKey("tournament_draw.id"), nullable=True),
        sa.Column("played_at", sa.DateTime(), nullable=True),
        sa.Column("round", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="NORMAL"),
        sa.Column("winner", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("set1_team1", sa.Integer(), nullable=True),
        sa.Column("set1_team2", sa.Integer(), nullable=True),
        sa.Column("set2_team1", sa.Integer(), nullable=True),
        sa.Column("set2_team2", sa.Integer(), nullable=True),
        sa.Column("set3_team1", sa.Integer(), nullable=True),
        sa.Column("set3_team2", sa.Integer(), nullable=True),
        sa.Column("player1_team1_id", sa.Integer(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("player2_team1_id", sa.Integer(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("player1_team2_id", sa.Integer(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("player2_team2_id", sa.Integer(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("last_sync", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("draw_id", "visual_code", name="uq_game_draw_visual_code"),
    )
    op.create_index("ix_game_visual_code", "game", ["visual_code"])
    op.create_index("ix_game_draw_id", "game", ["draw_id"])

    op.create_table(
        "standing",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entry_id", sa.Integer(), sa.ForeignKey("entry.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("size", sa.Integer(), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("played", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("won", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tied", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("games_won", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("games_lost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sets_won", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sets_lost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_points_won", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_points_lost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("risers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fallers", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_standing_entry_id", "standing", ["entry_id"], unique=True)

    # -----------------------------------------------------------------------
    # 6. Sync job log
    # -----------------------------------------------------------------------
    op.create_table(
        "sync_job_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_type", sa.String(), nullable=False),
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("tournament_code", sa.String(), nullable=True),
        sa.Column("event_code", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_stack", sa.Text(), nullable=True),
        sa.Column("job_data", sa.JSON(), nullable=True),
        sa.Column("result", sa.JSON(), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        sa.Column("items_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_sync_job_log_job_type", "sync_job_log", ["job_type"])
    op.create_index("ix_sync_job_log_job_id", "sync_job_log", ["job_id"])
    op.create_index("ix_sync_job_log_tournament_code", "sync_job_log", ["tournament_code"])


def downgrade():
    op.drop_table("sync_job_log")
    op.drop_table("standing")
    op.drop_table("game")
    op.drop_table("entry")
    op.drop_table("tournament_draw")
    op.drop_table("waiting_list_log")
    op.drop_table("tournament_enrollment")
    op.drop_table("enrollment_session_item")
    op.drop_table("enrollment_session")
    op.drop_table("tournament_sub_event")
    op.drop_table("player")
    op.drop_table("tournament_event")
