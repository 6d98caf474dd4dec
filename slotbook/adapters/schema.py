"""SQLAlchemy Core table definitions for the slotbook database.

Dates are stored as ``YYYY-MM-DD`` text and times of day as ``HH:MM``
text, matching the wire format, so rows stay readable in any SQLite shell.
"""

from sqlalchemy import CheckConstraint, Column, Index, Integer, MetaData, Table, Text

metadata = MetaData()

services = Table(
    "services",
    metadata,
    Column("id", Text, primary_key=True),
    Column("name", Text, nullable=False),
    Column("price_label", Text, default="", server_default=""),
    Column("description", Text, default="", server_default=""),
    Column("duration_minutes", Integer, nullable=False),
)

# Singleton row, id is always 1
working_hours = Table(
    "working_hours",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("open_time", Text, nullable=False),
    Column("close_time", Text, nullable=False),
    Column("break_start", Text),
    Column("break_end", Text),
    Column("closed_weekdays", Text, nullable=False, default="[]", server_default="[]"),  # JSON array
    CheckConstraint("id = 1", name="working_hours_singleton"),
)

blackout_rules = Table(
    "blackout_rules",
    metadata,
    Column("id", Text, primary_key=True),
    Column("title", Text, nullable=False),
    Column("anchor_date", Text, nullable=False),
    Column("start_time", Text, nullable=False),
    Column("end_time", Text, nullable=False),
    Column("is_recurring", Integer, default=0, server_default="0"),
    Column("recurrence", Text, nullable=False, default="none", server_default="none"),
    Column("occurrence_count", Integer, nullable=False, default=1, server_default="1"),
)

appointments = Table(
    "appointments",
    metadata,
    Column("id", Text, primary_key=True),
    Column("date", Text, nullable=False),
    Column("start_time", Text, nullable=False),
    Column("end_time", Text, nullable=False),
    Column("service_id", Text, nullable=False),
    Column("service_name", Text, nullable=False),
    Column("client_name", Text, nullable=False),
    Column("client_phone", Text, default="", server_default=""),
    Column("created_at", Text, nullable=False),
)

Index("ix_appointments_date", appointments.c.date)
