"""Create KPI catalogue, KPI data and spreadsheet connection tables

Revision ID: 001_create_kpi_sync_tables
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_create_kpi_sync_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create deals, kpi_definitions, kpi_data, data_connections and data_connection_sync_logs."""

    op.create_table(
        'deals',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('fund_id', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=500), nullable=False),
        sa.Column('current_value', sa.Float(), nullable=True),
        sa.Column('kpis', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_deals_fund_id', 'deals', ['fund_id'])

    op.create_table(
        'kpi_definitions',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('code', sa.String(length=100), nullable=False, unique=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('format', sa.String(length=20), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_kpi_definitions_code', 'kpi_definitions', ['code'])
    op.create_index('ix_kpi_definitions_category', 'kpi_definitions', ['category'])

    # One value per deal, KPI, period and data type; syncs overwrite
    op.create_table(
        'kpi_data',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('deal_id', sa.String(length=255), nullable=False),
        sa.Column('kpi_id', sa.String(), sa.ForeignKey('kpi_definitions.id'), nullable=False),
        sa.Column('period_type', sa.String(length=20), nullable=True),
        sa.Column('period_date', sa.Date(), nullable=False),
        sa.Column('data_type', sa.String(length=20), nullable=True),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('source', sa.String(length=20), nullable=True),
        sa.Column('source_ref', sa.String(length=255), nullable=True),
        sa.Column('imported_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            'deal_id', 'kpi_id', 'period_type', 'period_date', 'data_type',
            name='uq_kpi_data_period',
        ),
    )
    op.create_index('ix_kpi_data_deal_id', 'kpi_data', ['deal_id'])
    op.create_index('ix_kpi_data_kpi_id', 'kpi_data', ['kpi_id'])

    op.create_table(
        'data_connections',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('fund_id', sa.String(length=255), nullable=False),
        sa.Column('deal_id', sa.String(), sa.ForeignKey('deals.id'), nullable=True),
        sa.Column('provider', sa.String(length=50), nullable=True),
        sa.Column('name', sa.String(length=500), nullable=False),
        sa.Column('spreadsheet_id', sa.String(length=255), nullable=False),
        sa.Column('sheet_name', sa.String(length=255), nullable=False),
        sa.Column('google_email', sa.String(length=320), nullable=True),
        sa.Column('credentials_encrypted', sa.Text(), nullable=True),
        sa.Column('token_expiry', sa.DateTime(), nullable=True),
        sa.Column('column_mapping', sa.JSON(), nullable=True),
        sa.Column('sync_frequency', sa.String(length=10), nullable=True),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sync_status', sa.String(length=20), nullable=True),
        sa.Column('sync_error', sa.Text(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('last_sync_row_count', sa.Integer(), nullable=True),
        sa.Column('next_sync_at', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_data_connections_fund_id', 'data_connections', ['fund_id'])
    op.create_index('ix_data_connections_deal_id', 'data_connections', ['deal_id'])
    op.create_index('ix_data_connections_provider', 'data_connections', ['provider'])
    op.create_index('ix_data_connections_sync_status', 'data_connections', ['sync_status'])
    op.create_index('ix_data_connections_next_sync_at', 'data_connections', ['next_sync_at'])

    op.create_table(
        'data_connection_sync_logs',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('connection_id', sa.String(), sa.ForeignKey('data_connections.id'), nullable=False),
        sa.Column('fund_id', sa.String(length=255), nullable=False),
        sa.Column('trigger', sa.String(length=20), nullable=True),
        sa.Column('sync_status', sa.String(length=20), nullable=True),
        sa.Column('row_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('kpi_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skipped_entries', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
    )
    op.create_index('ix_data_connection_sync_logs_connection_id', 'data_connection_sync_logs', ['connection_id'])
    op.create_index('ix_data_connection_sync_logs_fund_id', 'data_connection_sync_logs', ['fund_id'])


def downgrade() -> None:
    """Drop the KPI sync tables."""
    op.drop_table('data_connection_sync_logs')
    op.drop_table('data_connections')
    op.drop_table('kpi_data')
    op.drop_table('kpi_definitions')
    op.drop_table('deals')
