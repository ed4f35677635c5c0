"""create statichost schema

Revision ID: a1c9e0d4b7f2
Revises:
Create Date: 2026-10-17 09:12:44.301772

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = 'a1c9e0d4b7f2'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLModel stores enum members by name
user_status = sa.Enum('ACTIVE', 'SUSPENDED', 'DELETED', name='userstatus')
site_status = sa.Enum(
    'PENDING', 'ACTIVE', 'SUSPENDED', 'INACTIVE', 'ERROR', 'DELETED', name='sitestatus'
)
deployment_type = sa.Enum('ZIP', 'GIT', 'MANUAL', name='deploymenttype')
upload_type = sa.Enum('FILE', 'ZIP', 'GIT', name='uploadtype')
upload_status = sa.Enum('COMPLETED', 'FAILED', name='uploadstatus')
event_type = sa.Enum('PAGEVIEW', 'EVENT', name='eventtype')
device_type = sa.Enum('DESKTOP', 'MOBILE', 'TABLET', name='devicetype')
audit_resource = sa.Enum('USER', 'SITE', 'UPLOAD', 'SYSTEM', name='auditresource')
audit_status = sa.Enum('SUCCESS', 'FAILED', name='auditstatus')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'user',
        sa.Column('id_user', sa.Integer(), nullable=False),
        sa.Column('email', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column('hashed_password', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('roles', sa.JSON(), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=False),
        sa.Column('status', user_status, nullable=False),
        sa.Column('max_sites', sa.Integer(), nullable=False),
        sa.Column('max_storage', sa.Integer(), nullable=False),
        sa.Column('used_sites', sa.Integer(), nullable=False),
        sa.Column('used_storage', sa.Integer(), nullable=False),
        sa.Column('quota_warning_sent_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('suspended_at', sa.DateTime(), nullable=True),
        sa.Column('suspension_reason', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id_user')
    )
    op.create_index(op.f('ix_user_email'), 'user', ['email'], unique=True)
    op.create_index(op.f('ix_user_status'), 'user', ['status'])
    op.create_index(op.f('ix_user_created_at'), 'user', ['created_at'])

    op.create_table(
        'site',
        sa.Column('id_site', sa.Integer(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(length=50), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(length=500), nullable=False),
        sa.Column('id_owner', sa.Integer(), nullable=False),
        sa.Column('slug', sqlmodel.sql.sqltypes.AutoString(length=60), nullable=False),
        sa.Column('storage_path', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('public_url', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('status', site_status, nullable=False),
        sa.Column('last_error', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('deployment_type', deployment_type, nullable=False),
        sa.Column('git_url', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('git_branch', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('last_deployed', sa.DateTime(), nullable=True),
        sa.Column('deployment_count', sa.Integer(), nullable=False),
        sa.Column('quota_used', sa.Integer(), nullable=False),
        sa.Column('file_count', sa.Integer(), nullable=False),
        sa.Column('last_file_upload', sa.DateTime(), nullable=True),
        sa.Column('analytics_enabled', sa.Boolean(), nullable=False),
        sa.Column('exclude_admin', sa.Boolean(), nullable=False),
        sa.Column('total_hits', sa.Integer(), nullable=False),
        sa.Column('unique_visitors', sa.Integer(), nullable=False),
        sa.Column('last_hit', sa.DateTime(), nullable=True),
        sa.Column('suspended_at', sa.DateTime(), nullable=True),
        sa.Column('suspension_reason', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['id_owner'], ['user.id_user']),
        sa.PrimaryKeyConstraint('id_site')
    )
    op.create_index(op.f('ix_site_id_owner'), 'site', ['id_owner'])
    op.create_index(op.f('ix_site_slug'), 'site', ['slug'], unique=True)
    op.create_index(op.f('ix_site_status'), 'site', ['status'])
    op.create_index(op.f('ix_site_created_at'), 'site', ['created_at'])

    op.create_table(
        'upload',
        sa.Column('id_upload', sa.Integer(), nullable=False),
        sa.Column('type', upload_type, nullable=False),
        sa.Column('filename', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('path', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('s3_key', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False),
        sa.Column('mime_type', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('status', upload_status, nullable=False),
        sa.Column('id_site', sa.Integer(), nullable=False),
        sa.Column('id_user', sa.Integer(), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['id_site'], ['site.id_site']),
        sa.ForeignKeyConstraint(['id_user'], ['user.id_user']),
        sa.PrimaryKeyConstraint('id_upload')
    )
    op.create_index(op.f('ix_upload_id_site'), 'upload', ['id_site'])
    op.create_index(op.f('ix_upload_id_user'), 'upload', ['id_user'])
    op.create_index(op.f('ix_upload_uploaded_at'), 'upload', ['uploaded_at'])

    op.create_table(
        'hit',
        sa.Column('id_hit', sa.Integer(), nullable=False),
        sa.Column('id_site', sa.Integer(), nullable=False),
        sa.Column('session_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
        sa.Column('visitor_id', sqlmodel.sql.sqltypes.AutoString(length=16), nullable=False),
        sa.Column('ip_hash', sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column('user_agent', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('referrer', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('url', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('path', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('browser', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('os', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('device_type', device_type, nullable=False),
        sa.Column('screen_resolution', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('language', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('country', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('event_type', event_type, nullable=False),
        sa.Column('event_name', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('session_start', sa.Boolean(), nullable=False),
        sa.Column('session_duration', sa.Integer(), nullable=False),
        sa.Column('load_time', sa.Integer(), nullable=True),
        sa.Column('bandwidth', sa.Integer(), nullable=False),
        sa.Column('is_bot', sa.Boolean(), nullable=False),
        sa.Column('bot_name', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('date', sqlmodel.sql.sqltypes.AutoString(length=10), nullable=False),
        sa.ForeignKeyConstraint(['id_site'], ['site.id_site']),
        sa.PrimaryKeyConstraint('id_hit')
    )
    op.create_index(op.f('ix_hit_id_site'), 'hit', ['id_site'])
    op.create_index(op.f('ix_hit_session_id'), 'hit', ['session_id'])
    op.create_index(op.f('ix_hit_visitor_id'), 'hit', ['visitor_id'])
    op.create_index(op.f('ix_hit_is_bot'), 'hit', ['is_bot'])
    op.create_index(op.f('ix_hit_timestamp'), 'hit', ['timestamp'])
    op.create_index(op.f('ix_hit_date'), 'hit', ['date'])

    op.create_table(
        'auditlog',
        sa.Column('id_audit', sa.Integer(), nullable=False),
        sa.Column('action', sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column('resource', audit_resource, nullable=False),
        sa.Column('resource_id', sqlmodel.sql.sqltypes.AutoString(length=64), nullable=True),
        sa.Column('status', audit_status, nullable=False),
        sa.Column('error', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('ip_address', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('user_agent', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('id_admin', sa.Integer(), nullable=True),
        sa.Column('id_user', sa.Integer(), nullable=True),
        sa.Column('id_site', sa.Integer(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['id_admin'], ['user.id_user']),
        sa.PrimaryKeyConstraint('id_audit')
    )
    op.create_index(op.f('ix_auditlog_action'), 'auditlog', ['action'])
    op.create_index(op.f('ix_auditlog_resource'), 'auditlog', ['resource'])
    op.create_index(op.f('ix_auditlog_status'), 'auditlog', ['status'])
    op.create_index(op.f('ix_auditlog_id_admin'), 'auditlog', ['id_admin'])
    op.create_index(op.f('ix_auditlog_id_user'), 'auditlog', ['id_user'])
    op.create_index(op.f('ix_auditlog_id_site'), 'auditlog', ['id_site'])
    op.create_index(op.f('ix_auditlog_created_at'), 'auditlog', ['created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('auditlog')
    op.drop_table('hit')
    op.drop_table('upload')
    op.drop_table('site')
    op.drop_table('user')

    bind = op.get_bind()
    for enum in (
        audit_status, audit_resource, device_type, event_type,
        upload_status, upload_type, deployment_type, site_status, user_status,
    ):
        enum.drop(bind, checkfirst=True)
