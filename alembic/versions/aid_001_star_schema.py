"""Create the aid star schema

Revision ID: aid_001
Revises:
Create Date: 2026-10-19

Tables added:
- dim_time, dim_country, dim_sector, dim_organization, dim_aid_type,
  dim_transaction_type
- fact_aid_transaction, fact_country_context
- etl_key_map, etl_build_log
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'aid_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Dimensions. Surrogate keys come from the ETL, never from the database.
    op.create_table(
        'dim_time',
        sa.Column('time_id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('year', sa.SmallInteger(), nullable=False),
        sa.Column('quarter', sa.SmallInteger(), nullable=False),
        sa.PrimaryKeyConstraint('time_id'),
        sa.UniqueConstraint('year', 'quarter', name='uq_dim_time_year_quarter'),
    )

    op.create_table(
        'dim_country',
        sa.Column('country_id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('iso_code', sa.String(3), nullable=False),
        sa.Column('country_name', sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint('country_id'),
        sa.UniqueConstraint('iso_code'),
    )

    op.create_table(
        'dim_sector',
        sa.Column('sector_id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('sector_code', sa.String(50), nullable=False),
        sa.Column('sector_name', sa.String(255), nullable=False),
        sa.Column('category', sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint('sector_id'),
        sa.UniqueConstraint('sector_code'),
    )

    op.create_table(
        'dim_organization',
        sa.Column('org_id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('org_name', sa.String(500), nullable=False),
        sa.Column('org_type', sa.String(255), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.PrimaryKeyConstraint('org_id'),
    )

    op.create_table(
        'dim_aid_type',
        sa.Column('aid_type_id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('aid_type_code', sa.String(50), nullable=False),
        sa.Column('aid_type_name', sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint('aid_type_id'),
        sa.UniqueConstraint('aid_type_code'),
    )

    op.create_table(
        'dim_transaction_type',
        sa.Column('transaction_type_id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint('transaction_type_id'),
        sa.UniqueConstraint('code'),
    )

    # Facts
    op.create_table(
        'fact_aid_transaction',
        sa.Column('iati_id', sa.String(255), nullable=False),
        sa.Column('value_usd', sa.Numeric(18, 2), nullable=False),
        sa.Column('humanitarian', sa.Boolean(), nullable=False),
        sa.Column('country_id', sa.Integer(), nullable=False),
        sa.Column('time_id', sa.Integer(), nullable=False),
        sa.Column('sector_id', sa.Integer(), nullable=False),
        sa.Column('reporting_org_id', sa.Integer(), nullable=False),
        sa.Column('aid_type_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['country_id'], ['dim_country.country_id']),
        sa.ForeignKeyConstraint(['time_id'], ['dim_time.time_id']),
        sa.ForeignKeyConstraint(['sector_id'], ['dim_sector.sector_id']),
        sa.ForeignKeyConstraint(['reporting_org_id'], ['dim_organization.org_id']),
        sa.ForeignKeyConstraint(['aid_type_id'], ['dim_aid_type.aid_type_id']),
        sa.ForeignKeyConstraint(['transaction_type_id'], ['dim_transaction_type.transaction_type_id']),
        sa.PrimaryKeyConstraint('iati_id'),
    )
    op.create_index('ix_fact_aid_transaction_country_time', 'fact_aid_transaction', ['country_id', 'time_id'])
    op.create_index('ix_fact_aid_transaction_sector', 'fact_aid_transaction', ['sector_id'])

    op.create_table(
        'fact_country_context',
        sa.Column('country_id', sa.Integer(), nullable=False),
        sa.Column('time_id', sa.Integer(), nullable=False),
        sa.Column('population', sa.Float(), nullable=True),
        sa.Column('gdp_per_capita', sa.Float(), nullable=True),
        sa.Column('indicators', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['country_id'], ['dim_country.country_id']),
        sa.ForeignKeyConstraint(['time_id'], ['dim_time.time_id']),
        sa.PrimaryKeyConstraint('country_id', 'time_id'),
    )

    # ETL state
    op.create_table(
        'etl_key_map',
        sa.Column('dimension', sa.String(50), nullable=False),
        sa.Column('surrogate_key', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('natural_key', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('dimension', 'surrogate_key'),
    )

    op.create_table(
        'etl_build_log',
        sa.Column('build_id', sa.String(36), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('records_read', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rows_loaded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rows_rejected', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conflicts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('build_id'),
    )


def downgrade() -> None:
    op.drop_table('etl_build_log')
    op.drop_table('etl_key_map')
    op.drop_table('fact_country_context')
    op.drop_index('ix_fact_aid_transaction_sector', table_name='fact_aid_transaction')
    op.drop_index('ix_fact_aid_transaction_country_time', table_name='fact_aid_transaction')
    op.drop_table('fact_aid_transaction')
    op.drop_table('dim_transaction_type')
    op.drop_table('dim_aid_type')
    op.drop_table('dim_organization')
    op.drop_table('dim_sector')
    op.drop_table('dim_country')
    op.drop_table('dim_time')
