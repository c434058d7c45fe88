"""initial_schema

Revision ID: 3f1a9c2e7b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1a9c2e7b40'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column('created_at', sa.DateTime(), nullable=False)]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(), nullable=False))
    return cols


def _user_fk(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)


def upgrade():
    # RBAC
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=320), nullable=False, unique=True),
        sa.Column('name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('department', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(updated=False),
    )
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(length=64), nullable=False, unique=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_table(
        'permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(length=128), nullable=False, unique=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    )
    op.create_table(
        'role_permissions',
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('permission_id', sa.Integer(), sa.ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True),
    )

    # Activity log
    op.create_table(
        'audit_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('request_id', sa.String(length=64), nullable=True),
        _user_fk('actor_user_id'),
        sa.Column('actor_user_email', sa.String(length=320), nullable=True),
        sa.Column('action', sa.String(length=128), nullable=False),
        sa.Column('entity_type', sa.String(length=128), nullable=True),
        sa.Column('entity_id', sa.String(length=128), nullable=True),
        sa.Column('reason', sa.String(length=512), nullable=True),
        sa.Column('metadata_json', sa.Text(), nullable=True),
        sa.Column('client_ip', sa.String(length=64), nullable=True),
    )
    op.create_index('idx_audit_entity', 'audit_events', ['entity_type', 'entity_id'])
    op.create_index('idx_audit_created_at', 'audit_events', ['created_at'])

    # Letters (documents reference them)
    op.create_table(
        'letters',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('number', sa.String(length=128), nullable=True),
        sa.Column('regarding', sa.String(length=255), nullable=False),
        sa.Column('origin', sa.String(length=255), nullable=False),
        sa.Column('destination', sa.String(length=255), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='NORMAL'),
        sa.Column('classification', sa.String(length=32), nullable=False, server_default='GENERAL'),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('file_url', sa.String(length=1024), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        _user_fk('approved_by_user_id'),
        _user_fk('created_by_user_id'),
        *_timestamps(),
    )
    op.create_index('idx_letters_status', 'letters', ['status'])
    op.create_index('idx_letters_date', 'letters', ['date'])

    # Documents
    op.create_table(
        'document_types',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_table(
        'documents',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column(
            'document_type_id',
            sa.Integer(),
            sa.ForeignKey('document_types.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('file_url', sa.String(length=1024), nullable=False),
        sa.Column('letter_id', sa.Integer(), sa.ForeignKey('letters.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        _user_fk('created_by_user_id'),
        *_timestamps(),
    )
    op.create_index('idx_documents_status', 'documents', ['status'])
    op.create_index('idx_documents_type', 'documents', ['document_type_id'])

    # Finance
    op.create_table(
        'finance_categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_table(
        'finances',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column(
            'category_id',
            sa.Integer(),
            sa.ForeignKey('finance_categories.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('proof_url', sa.String(length=1024), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        _user_fk('created_by_user_id'),
        *_timestamps(),
    )
    op.create_index('idx_finances_status', 'finances', ['status'])
    op.create_index('idx_finances_date', 'finances', ['date'])
    op.create_index('idx_finances_type', 'finances', ['type'])

    # Work programs
    op.create_table(
        'work_programs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('department', sa.String(length=32), nullable=False),
        sa.Column('schedule', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('goal', sa.Text(), nullable=False, server_default=''),
        sa.Column('funds', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('used_funds', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('remaining_funds', sa.Numeric(14, 2), nullable=False, server_default='0'),
        _user_fk('responsible_user_id'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        _user_fk('created_by_user_id'),
        *_timestamps(),
    )
    op.create_index('idx_work_programs_status', 'work_programs', ['status'])
    op.create_index('idx_work_programs_department', 'work_programs', ['department'])

    # Approvals (polymorphic reference, one row per record)
    op.create_table(
        'approvals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('note', sa.String(length=512), nullable=True),
        _user_fk('requested_by_user_id'),
        _user_fk('decided_by_user_id'),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('entity_type', 'entity_id', name='uq_approval_entity'),
    )
    op.create_index('idx_approvals_status', 'approvals', ['status'])
    op.create_index('idx_approvals_created_at', 'approvals', ['created_at'])


def downgrade():
    op.drop_index('idx_approvals_created_at', table_name='approvals')
    op.drop_index('idx_approvals_status', table_name='approvals')
    op.drop_table('approvals')
    op.drop_index('idx_work_programs_department', table_name='work_programs')
    op.drop_index('idx_work_programs_status', table_name='work_programs')
    op.drop_table('work_programs')
    op.drop_index('idx_finances_type', table_name='finances')
    op.drop_index('idx_finances_date', table_name='finances')
    op.drop_index('idx_finances_status', table_name='finances')
    op.drop_table('finances')
    op.drop_table('finance_categories')
    op.drop_index('idx_documents_type', table_name='documents')
    op.drop_index('idx_documents_status', table_name='documents')
    op.drop_table('documents')
    op.drop_table('document_types')
    op.drop_index('idx_letters_date', table_name='letters')
    op.drop_index('idx_letters_status', table_name='letters')
    op.drop_table('letters')
    op.drop_index('idx_audit_created_at', table_name='audit_events')
    op.drop_index('idx_audit_entity', table_name='audit_events')
    op.drop_table('audit_events')
    op.drop_table('role_permissions')
    op.drop_table('user_roles')
    op.drop_table('permissions')
    op.drop_table('roles')
    op.drop_table('users')
