"""create task desk tables

Revision ID: 1a2f6c9d3e01
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a2f6c9d3e01'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'companies',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('representative', sa.String(length=255), nullable=True),
        sa.Column('support', sa.String(length=120), nullable=True),
        sa.Column('software_information', sa.JSON(), nullable=True, comment='List of {softwareType, ...}'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'stored_blobs',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=False, comment='Original filename'),
        sa.Column('content_type', sa.String(length=150), nullable=True, comment='MIME type'),
        sa.Column('length', sa.BigInteger(), nullable=False, comment='Size in bytes'),
        sa.Column('upload_date', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True,
                  comment='originalName, uploadedAt, uploadedBy, relatedTask, attachmentType'),
        sa.Column('data', sa.LargeBinary(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'tasks',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('code', sa.String(length=100), nullable=False, comment='Client-generated task label'),
        sa.Column('company', sa.JSON(), nullable=True),
        sa.Column('contact', sa.JSON(), nullable=True),
        sa.Column('working', sa.Text(), nullable=True),
        sa.Column('date_time', sa.DateTime(), nullable=True),
        sa.Column('priority', sa.String(length=20), nullable=True),
        sa.Column('task_remarks', sa.Text(), nullable=True),
        sa.Column('tasks_attachment', sa.JSON(), nullable=True),
        # Workflow
        sa.Column('status', sa.String(length=30), server_default='pending', nullable=False),
        sa.Column('final_status', sa.String(length=30), nullable=True),
        sa.Column('assigned', sa.Boolean(), nullable=False),
        sa.Column('approved', sa.Boolean(), nullable=False),
        sa.Column('completion_approved', sa.Boolean(), nullable=False),
        sa.Column('unposted', sa.Boolean(), nullable=False),
        sa.Column('unpost_status', sa.String(length=30), nullable=True),
        sa.Column('unposted_at', sa.DateTime(), nullable=True),
        # Assignment
        sa.Column('assigned_to', sa.JSON(), nullable=True),
        sa.Column('assigned_date', sa.DateTime(), nullable=True),
        sa.Column('assignment_remarks', sa.Text(), nullable=True),
        sa.Column('assignment_attachment', sa.JSON(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('software_type', sa.String(length=100), nullable=True),
        # Completion / rejection
        sa.Column('completion_remarks', sa.Text(), nullable=True),
        sa.Column('completion_attachment', sa.JSON(), nullable=True),
        sa.Column('rejection_remarks', sa.Text(), nullable=True),
        sa.Column('rejection_attachment', sa.JSON(), nullable=True),
        sa.Column('completion_approved_at', sa.DateTime(), nullable=True),
        sa.Column('time_taken', sa.BigInteger(), nullable=True),
        # Developer cycle
        sa.Column('developer_status', sa.String(length=30), nullable=True),
        sa.Column('developer_remarks', sa.Text(), nullable=True),
        sa.Column('developer_attachment', sa.JSON(), nullable=True),
        sa.Column('developer_status_rejection', sa.String(length=30), nullable=True),
        sa.Column('developer_rejection_remarks', sa.Text(), nullable=True),
        sa.Column('developer_rejection_solve_attachment', sa.JSON(), nullable=True),
        sa.Column('developer_done_date', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_tasks_code'), 'tasks', ['code'], unique=False)
    op.create_index(op.f('ix_tasks_status'), 'tasks', ['status'], unique=False)
    op.create_index(op.f('ix_tasks_final_status'), 'tasks', ['final_status'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_tasks_final_status'), table_name='tasks')
    op.drop_index(op.f('ix_tasks_status'), table_name='tasks')
    op.drop_index(op.f('ix_tasks_code'), table_name='tasks')
    op.drop_table('tasks')
    op.drop_table('stored_blobs')
    op.drop_table('companies')
