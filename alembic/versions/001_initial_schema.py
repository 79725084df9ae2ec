"""Initial schema - all tables for SMS intake and crew dispatch.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Businesses (tenants)
    op.create_table(
        "businesses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("account_id", sa.String(64)),
        sa.Column("sms_phone", sa.String(20), unique=True),
        sa.Column("call_phone", sa.String(20)),
        sa.Column("messaging_service_sid", sa.String(64)),
        sa.Column("service_template_id", sa.String(50), default="lawncare_v1"),
        sa.Column("timezone", sa.String(50), default="America/Chicago"),
        sa.Column("jobber_account_id", sa.String(100)),
        sa.Column("settings", postgresql.JSONB, default={}),
        sa.Column("is_active", sa.Boolean, default=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_businesses_is_active", "businesses", ["is_active"])

    # Operator users
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id"), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(100)),
        sa.Column("role", sa.String(20), nullable=False, server_default="staff"),
        sa.Column("is_active", sa.Boolean, default=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_business_id", "users", ["business_id"])

    # SMS sessions
    op.create_table(
        "sms_sessions",
        sa.Column("session_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("account_id", sa.String(64)),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("from_phone", sa.String(20), nullable=False),
        sa.Column("to_phone", sa.String(20)),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("service_template_id", sa.String(50), default="lawncare_v1"),
        sa.Column("state", sa.String(30), nullable=False, server_default="INTENT"),
        sa.Column("current_field", sa.String(50)),
        sa.Column("attempt_counters", postgresql.JSONB, default={}),
        sa.Column("confidence", postgresql.JSONB, default={}),
        sa.Column("collected", postgresql.JSONB, default={}),
        sa.Column("derived", postgresql.JSONB, default={}),
        sa.Column("quote", postgresql.JSONB),
        sa.Column("scheduling", postgresql.JSONB),
        sa.Column("handoff", postgresql.JSONB),
        sa.Column("audit", postgresql.JSONB, default={}),
        sa.Column("last_provider_message_id", sa.String(64)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("business_id", "from_phone", name="uq_sms_sessions_business_phone"),
    )
    op.create_index("ix_sms_sessions_status", "sms_sessions", ["status"])
    op.create_index("ix_sms_sessions_state", "sms_sessions", ["state"])

    # SMS events (inbound + outbound, durable idempotency key on event_id)
    op.create_table(
        "sms_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("event_id", sa.String(128), nullable=False, unique=True),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("business_id", postgresql.UUID(as_uuid=True)),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column("from_phone", sa.String(20)),
        sa.Column("to_phone", sa.String(20)),
        sa.Column("text", sa.Text, nullable=False),
        sa.Column("provider_payload", postgresql.JSONB),
        sa.Column("state_before", sa.String(30)),
        sa.Column("state_after", sa.String(30)),
        sa.Column("provider_sid", sa.String(64)),
        sa.Column("delivery_status", sa.String(20)),
        sa.Column("error_code", sa.String(20)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_sms_events_session_created", "sms_events", ["session_id", "created_at"])
    op.create_index("ix_sms_events_provider_sid", "sms_events", ["provider_sid"])

    # Handoff tickets
    op.create_table(
        "handoff_tickets",
        sa.Column("ticket_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sms_sessions.session_id"), nullable=False),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("account_id", sa.String(64)),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("priority", sa.String(10), default="normal"),
        sa.Column("reason_codes", postgresql.JSONB, default=[]),
        sa.Column("summary", sa.Text, default=""),
        sa.Column("assigned_to_user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_handoff_tickets_business_status", "handoff_tickets", ["business_id", "status"])
    op.create_index("ix_handoff_tickets_session_id", "handoff_tickets", ["session_id"])

    # Click-to-call tokens (expiry checked on read)
    op.create_table(
        "click_to_call_tokens",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sms_sessions.session_id"), nullable=False),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("token", sa.String(32), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_click_to_call_tokens_session_id", "click_to_call_tokens", ["session_id"])

    # Crew roster
    op.create_table(
        "crews",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("skills", postgresql.JSONB, default=[]),
        sa.Column("equipment", postgresql.JSONB, default=[]),
        sa.Column("member_count", sa.Integer, default=2),
        sa.Column("home_base_lat", sa.Float),
        sa.Column("home_base_lng", sa.Float),
        sa.Column("service_radius_miles", sa.Float, default=20.0),
        sa.Column("daily_capacity_minutes", sa.Integer, default=480),
        sa.Column("labor_cost_per_hour", sa.Float),
        sa.Column("availability", postgresql.JSONB, default={}),
        sa.Column("is_active", sa.Boolean, default=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_crews_business_active", "crews", ["business_id", "is_active"])

    op.create_table(
        "service_zones",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("min_lat", sa.Float),
        sa.Column("max_lat", sa.Float),
        sa.Column("min_lng", sa.Float),
        sa.Column("max_lng", sa.Float),
        sa.Column("center_lat", sa.Float),
        sa.Column("center_lng", sa.Float),
        sa.Column("radius_miles", sa.Float),
        sa.Column("is_active", sa.Boolean, default=True),
    )

    op.create_table(
        "crew_zone_assignments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("crew_id", sa.Integer, sa.ForeignKey("crews.id"), nullable=False),
        sa.Column("zone_id", sa.Integer, sa.ForeignKey("service_zones.id"), nullable=False),
        sa.Column("is_primary", sa.Boolean, default=False),
    )
    op.create_index("ix_crew_zone_assignments_crew_id", "crew_zone_assignments", ["crew_id"])

    op.create_table(
        "crew_time_off",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("crew_id", sa.Integer, sa.ForeignKey("crews.id"), nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=False),
        sa.Column("reason", sa.String(255)),
    )
    op.create_index("ix_crew_time_off_crew_dates", "crew_time_off", ["crew_id", "start_date", "end_date"])

    # Job requests
    op.create_table(
        "job_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id"), nullable=False),
        sa.Column("customer_name", sa.String(200)),
        sa.Column("customer_phone", sa.String(20)),
        sa.Column("address", sa.Text),
        sa.Column("zip_code", sa.String(10)),
        sa.Column("lat", sa.Float),
        sa.Column("lng", sa.Float),
        sa.Column("services", postgresql.JSONB, default=[]),
        sa.Column("frequency", sa.String(20)),
        sa.Column("required_skills", postgresql.JSONB, default=[]),
        sa.Column("required_equipment", postgresql.JSONB, default=[]),
        sa.Column("crew_size_min", sa.Integer, default=1),
        sa.Column("labor_low_minutes", sa.Integer, default=60),
        sa.Column("labor_high_minutes", sa.Integer, default=60),
        sa.Column("lot_area_sqft", sa.Integer),
        sa.Column("price_low_usd", sa.Float),
        sa.Column("price_high_usd", sa.Float),
        sa.Column("requires_site_visit", sa.Boolean, default=False),
        sa.Column("needs_approval", sa.Boolean, default=False),
        sa.Column("notes", sa.Text),
        sa.Column("source", sa.String(20), default="sms"),
        sa.Column("sms_session_id", postgresql.UUID(as_uuid=True)),
        sa.Column("preferred_date", sa.Date),
        sa.Column("status", sa.String(30), nullable=False, server_default="new"),
        sa.Column("assigned_crew_id", sa.Integer, sa.ForeignKey("crews.id")),
        sa.Column("assigned_date", sa.Date),
        sa.Column("external_job_id", sa.String(100)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_job_requests_business_status", "job_requests", ["business_id", "status"])

    # Existing booked work
    op.create_table(
        "schedule_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id"), nullable=False),
        sa.Column("crew_id", sa.Integer, sa.ForeignKey("crews.id"), nullable=False),
        sa.Column("job_request_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("job_requests.id")),
        sa.Column("scheduled_date", sa.Date, nullable=False),
        sa.Column("start_minute", sa.Integer, nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False),
        sa.Column("lat", sa.Float),
        sa.Column("lng", sa.Float),
        sa.Column("status", sa.String(20), default="scheduled"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_schedule_items_crew_date", "schedule_items", ["crew_id", "scheduled_date"])

    # Simulation candidates
    op.create_table(
        "assignment_simulations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("job_request_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("job_requests.id"), nullable=False),
        sa.Column("crew_id", sa.Integer, sa.ForeignKey("crews.id"), nullable=False),
        sa.Column("simulation_run_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("rank", sa.Integer, nullable=False),
        sa.Column("proposed_date", sa.Date, nullable=False),
        sa.Column("proposed_start_minute", sa.Integer),
        sa.Column("travel_minutes", sa.Float, default=0.0),
        sa.Column("margin_score", sa.Float, default=0.0),
        sa.Column("margin_risk", sa.String(10), default="low"),
        sa.Column("risk_score", sa.Float, default=0.0),
        sa.Column("composite_score", sa.Float, default=0.0),
        sa.Column("remaining_capacity_minutes", sa.Integer, default=0),
        sa.Column("feasibility", postgresql.JSONB, default={}),
        sa.Column("explanation", postgresql.JSONB, default={}),
        sa.Column("is_current", sa.Boolean, default=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_assignment_simulations_job_current", "assignment_simulations", ["job_request_id", "is_current"])
    op.create_index("ix_assignment_simulations_run", "assignment_simulations", ["simulation_run_id"])

    # Decisions
    op.create_table(
        "assignment_decisions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("job_request_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("job_requests.id"), nullable=False),
        sa.Column("simulation_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("assignment_simulations.id"), nullable=False),
        sa.Column("created_by_user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reasoning_json", postgresql.JSONB, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending_approval"),
        sa.Column("approved_by_user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("rejected_by_user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.Column("rejected_at", sa.DateTime(timezone=True)),
        sa.Column("rejection_reason", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_assignment_decisions_job", "assignment_decisions", ["job_request_id"])
    op.create_index("ix_assignment_decisions_business_status", "assignment_decisions", ["business_id", "status"])

    # Write-back queue
    op.create_table(
        "writeback_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("decision_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("assignment_decisions.id"), nullable=False, unique=True),
        sa.Column("job_request_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("job_requests.id"), nullable=False),
        sa.Column("jobber_account_id", sa.String(100)),
        sa.Column("external_job_id", sa.String(100)),
        sa.Column("payload", postgresql.JSONB, default={}),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer, default=0),
        sa.Column("last_error", sa.Text),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True)),
        sa.Column("sent_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_writeback_requests_status", "writeback_requests", ["status"])

    # Audit trail
    op.create_table(
        "event_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True)),
        sa.Column("session_id", postgresql.UUID(as_uuid=True)),
        sa.Column("job_request_id", postgresql.UUID(as_uuid=True)),
        sa.Column("decision_id", postgresql.UUID(as_uuid=True)),
        sa.Column("user_id", postgresql.UUID(as_uuid=True)),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), default="success"),
        sa.Column("duration_ms", sa.Integer),
        sa.Column("message", sa.Text),
        sa.Column("error_message", sa.Text),
        sa.Column("data", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_events_business_id", "event_logs", ["business_id"])
    op.create_index("ix_events_action", "event_logs", ["action"])
    op.create_index("ix_events_created_at", "event_logs", ["created_at"])


def downgrade() -> None:
    for table in (
        "event_logs",
        "writeback_requests",
        "assignment_decisions",
        "assignment_simulations",
        "schedule_items",
        "job_requests",
        "crew_time_off",
        "crew_zone_assignments",
        "service_zones",
        "crews",
        "click_to_call_tokens",
        "handoff_tickets",
        "sms_events",
        "sms_sessions",
        "users",
        "businesses",
    ):
        op.drop_table(table)
