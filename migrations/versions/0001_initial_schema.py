"""Initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

The CHECK constraint on book_requests.status is the request status
vocabulary: the four canonical tokens plus the legacy ones still present in
imported rows. Changing the vocabulary means a new revision.
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

REQUEST_STATUSES = (
    "pending",
    "approved",
    "declined",
    "collected",
    "accepted",
    "ready",
    "cancelled",
    "rejected",
)


def upgrade():
    # Library members
    op.create_table(
        "library_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("join_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("library_members", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_library_members_email"), ["email"], unique=True)

    # Books
    op.create_table(
        "books",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("author", sa.String(length=500), nullable=True),
        sa.Column("subject", sa.String(length=255), nullable=True),
        sa.Column("isbn", sa.String(length=20), nullable=True),
        sa.Column("shelf_location", sa.String(length=100), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("available", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_books_quantity_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("books", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_books_title"), ["title"], unique=False)

    # Book requests
    allowed = ", ".join(f"'{status}'" for status in REQUEST_STATUSES)
    op.create_table(
        "book_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=True),
        sa.Column("book_id", sa.Integer(), nullable=True),
        sa.Column("requested_days", sa.Integer(), nullable=False),
        sa.Column("request_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("processed_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("book_title", sa.String(length=500), nullable=True),
        sa.Column("book_author", sa.String(length=500), nullable=True),
        sa.Column("book_subject", sa.String(length=255), nullable=True),
        sa.Column("user_name", sa.String(length=255), nullable=True),
        sa.Column("user_email", sa.String(length=255), nullable=True),
        sa.CheckConstraint(
            "requested_days >= 1 AND requested_days <= 30",
            name="ck_book_requests_requested_days_range",
        ),
        sa.CheckConstraint(f"status IN ({allowed})", name="ck_book_requests_status"),
        sa.ForeignKeyConstraint(["book_id"], ["books.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["member_id"], ["library_members.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("book_requests", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_book_requests_member_id"), ["member_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_book_requests_book_id"), ["book_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_book_requests_status"), ["status"], unique=False)

    # Borrowing records
    op.create_table(
        "borrowing_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("book_id", sa.Integer(), nullable=False),
        sa.Column("borrowed_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("returned_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("last_reminder_sent", sa.Date(), nullable=True),
        sa.Column("book_title", sa.String(length=500), nullable=True),
        sa.CheckConstraint("status IN ('borrowed', 'returned')", name="ck_borrowing_records_status"),
        sa.ForeignKeyConstraint(["book_id"], ["books.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["member_id"], ["library_members.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("borrowing_records", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_borrowing_records_member_id"), ["member_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_borrowing_records_book_id"), ["book_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_borrowing_records_status"), ["status"], unique=False)

    # User notifications
    op.create_table(
        "user_notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=True),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_request_id", sa.Integer(), nullable=True),
        sa.Column("related_borrowing_record_id", sa.Integer(), nullable=True),
        sa.Column("related_book_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("emailed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["member_id"], ["library_members.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("user_notifications", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_user_notifications_member_id"), ["member_id"], unique=False)
        batch_op.create_index(
            batch_op.f("ix_user_notifications_related_request_id"), ["related_request_id"], unique=False
        )
        batch_op.create_index(batch_op.f("ix_user_notifications_created_at"), ["created_at"], unique=False)

    # Email log
    op.create_table(
        "email_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recipient", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=500), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=True),
        sa.Column("member_id", sa.Integer(), nullable=True),
        sa.Column("book_id", sa.Integer(), nullable=True),
        sa.Column("provider", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("email_logs", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_email_logs_created_at"), ["created_at"], unique=False)

    # Audit log
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("actor", sa.String(length=100), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("target_type", sa.String(length=50), nullable=True),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("audit_logs", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_audit_logs_timestamp"), ["timestamp"], unique=False)
        batch_op.create_index(batch_op.f("ix_audit_logs_action"), ["action"], unique=False)


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("email_logs")
    op.drop_table("user_notifications")
    op.drop_table("borrowing_records")
    op.drop_table("book_requests")
    op.drop_table("books")
    op.drop_table("library_members")
