"""initial_process_raci_schema

Create organization (departments, roles), process snapshots and the manual
RACI matrix tables (raci_actions, raci_cells).

Revision ID: 7f3a9c1d2e40
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7f3a9c1d2e40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "departments" not in existing_tables:
        op.create_table(
            "departments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("color", sa.String(length=7), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if "roles" not in existing_tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("department_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("color", sa.String(length=7), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_role_department", "roles", ["department_id", "sort_order"])

    if "processes" not in existing_tables:
        op.create_table(
            "processes",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=120), nullable=False),
            sa.Column(
                "steps", sa.JSON(), nullable=False,
                comment="Tagged-union step array: start, action/decision…, finish",
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if "raci_actions" not in existing_tables:
        op.create_table(
            "raci_actions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("department_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "idx_raci_action_department", "raci_actions", ["department_id", "sort_order"],
        )

    if "raci_cells" not in existing_tables:
        op.create_table(
            "raci_cells",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("action_id", sa.String(length=36), nullable=False),
            sa.Column("role_id", sa.String(length=36), nullable=False),
            sa.Column("value", sa.String(length=1), nullable=False, comment="R | A | C | I"),
            sa.ForeignKeyConstraint(["action_id"], ["raci_actions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("action_id", "role_id", name="uq_raci_cell_action_role"),
        )
        op.create_index("ix_raci_cells_action_id", "raci_cells", ["action_id"])
        op.create_index("ix_raci_cells_role_id", "raci_cells", ["role_id"])


def downgrade():
    op.drop_index("ix_raci_cells_role_id", table_name="raci_cells")
    op.drop_index("ix_raci_cells_action_id", table_name="raci_cells")
    op.drop_table("raci_cells")
    op.drop_index("idx_raci_action_department", table_name="raci_actions")
    op.drop_table("raci_actions")
    op.drop_table("processes")
    op.drop_index("idx_role_department", table_name="roles")
    op.drop_table("roles")
    op.drop_table("departments")
