"""Migration initiale - Création des tables NCH Portal

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Les énumérations sont stockées en VARCHAR (native_enum=False)

    # Table admins
    op.create_table(
        'admins',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_admins_id', 'admins', ['id'])
    op.create_index('ix_admins_email', 'admins', ['email'], unique=True)

    # Table clients
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=True),
        sa.Column('wilaya', sa.String(length=100), nullable=True),
        sa.Column('diploma', sa.String(length=255), nullable=True),
        sa.Column('selected_offer', sa.Enum('basic', 'premium', 'gold', name='offer', native_enum=False), nullable=True),
        sa.Column('selected_countries', sa.JSON(), nullable=False),
        sa.Column('payment_plan', sa.Enum('full', 'partial', name='paymentplan', native_enum=False), server_default='partial', nullable=False),
        sa.Column('documents', sa.JSON(), nullable=False),
        sa.Column('drive_folder', sa.JSON(), nullable=True),
        sa.Column(
            'status',
            sa.Enum('pending', 'processing', 'approved', 'rejected', 'completed', name='clientstatus', native_enum=False),
            server_default='pending',
            nullable=False,
        ),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_clients_id', 'clients', ['id'])
    op.create_index('ix_clients_email', 'clients', ['email'], unique=True)
    op.create_index('idx_client_status', 'clients', ['status'])
    op.create_index('idx_client_created', 'clients', ['created_at'])

    # Table client_stages
    op.create_table(
        'client_stages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('stage_number', sa.Integer(), nullable=False),
        sa.Column('stage_name', sa.String(length=255), nullable=False),
        sa.Column(
            'status',
            sa.Enum('not_started', 'in_progress', 'pending_review', 'completed', name='stagestatus', native_enum=False),
            server_default='not_started',
            nullable=False,
        ),
        sa.Column('required_documents', sa.JSON(), nullable=False),
        sa.Column('notes', sa.Text(), server_default='', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'stage_number', name='uq_client_stage_number'),
        sa.CheckConstraint('stage_number BETWEEN 1 AND 6', name='valid_stage_number'),
    )
    op.create_index('ix_client_stages_id', 'client_stages', ['id'])
    op.create_index('idx_stage_client', 'client_stages', ['client_id'])

    # Table payments
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('payment_type', sa.Enum('initial', 'second', name='paymenttype', native_enum=False), nullable=False),
        sa.Column('payment_method', sa.Enum('baridimob', 'cib', 'edahabia', name='paymentmethod', native_enum=False), nullable=True),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=10), server_default='DZD', nullable=False),
        sa.Column(
            'status',
            sa.Enum('pending', 'paid', 'verified', 'rejected', 'completed', 'failed', name='paymentstatus', native_enum=False),
            server_default='pending',
            nullable=False,
        ),
        sa.Column('receipt_url', sa.String(length=500), nullable=True),
        sa.Column('transaction_id', sa.String(length=100), nullable=True),
        sa.Column('verified_by', sa.Integer(), nullable=True),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['verified_by'], ['admins.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount >= 0', name='non_negative_amount'),
        sa.UniqueConstraint('client_id', 'payment_type', name='uq_client_payment_type'),
    )
    op.create_index('ix_payments_id', 'payments', ['id'])
    op.create_index('idx_payment_client', 'payments', ['client_id'])
    op.create_index('idx_payment_status', 'payments', ['status'])

    # Table pending_registrations
    op.create_table(
        'pending_registrations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_token', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('form_data', sa.JSON(), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=False),
        sa.Column('payment_type', sa.String(length=20), server_default='partial', nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('receipt_url', sa.String(length=500), nullable=True),
        sa.Column('transaction_id', sa.String(length=100), nullable=True),
        sa.Column(
            'status',
            sa.Enum('pending_verification', 'pending', 'paid', 'expired', name='registrationstatus', native_enum=False),
            nullable=False,
        ),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pending_registrations_id', 'pending_registrations', ['id'])
    op.create_index('ix_pending_registrations_session_token', 'pending_registrations', ['session_token'], unique=True)
    op.create_index('ix_pending_registrations_email', 'pending_registrations', ['email'])
    op.create_index('idx_pending_status', 'pending_registrations', ['status'])


def downgrade() -> None:
    # Supprimer les tables dans l'ordre inverse
    op.drop_table('pending_registrations')
    op.drop_table('payments')
    op.drop_table('client_stages')
    op.drop_table('clients')
    op.drop_table('admins')
