"""Esquema inicial: usuarios, vacunas, certificados, dosis, refuerzos, audit log

Revision ID: a1c3e5f7b9d1
Revises:
Create Date: 2026-10-19

- Crea enum userrole y tabla users (operadores con centro asignado)
- Crea vaccines y vaccine_providers (catálogo)
- Crea certificate_sequences con la fila 'certificate' en 0
- Crea certificates, vaccination_records y booster_doses
- Crea audit_log (INSERT-only)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f7b9d1'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── 1. users ─────────────────────────────────────
    op.execute("CREATE TYPE userrole AS ENUM ('ADMIN', 'STAFF')")
    userrole_enum = postgresql.ENUM('ADMIN', 'STAFF', name='userrole', create_type=False)

    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('role', userrole_enum, nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('center', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # ── 2. vaccines / vaccine_providers ──────────────
    op.create_table(
        'vaccines',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False, unique=True),
        sa.Column('total_dose', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('total_dose >= 1', name='ck_vaccine_total_dose_positive'),
    )
    op.create_table(
        'vaccine_providers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('vaccine_id', UUID(as_uuid=True), sa.ForeignKey('vaccines.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('vaccine_id', 'name', name='uq_vaccine_provider_name'),
    )

    # ── 3. certificate_sequences ─────────────────────
    sequences = op.create_table(
        'certificate_sequences',
        sa.Column('name', sa.String(50), primary_key=True),
        sa.Column('last_number', sa.Integer(), nullable=False, server_default='0'),
    )
    op.bulk_insert(sequences, [{'name': 'certificate', 'last_number': 0}])

    # ── 4. certificates ──────────────────────────────
    op.create_table(
        'certificates',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('certificate_no', sa.Integer(), nullable=False, unique=True),
        sa.Column('previous_certificate_id', UUID(as_uuid=True), sa.ForeignKey('certificates.id'), nullable=True),
        sa.Column('patient_name', sa.String(200), nullable=False),
        sa.Column('father_name', sa.String(200), nullable=False),
        sa.Column('mother_name', sa.String(200), nullable=False),
        sa.Column('date_of_birth', sa.Date(), nullable=False),
        sa.Column('gender', sa.String(20), nullable=False),
        sa.Column('nationality', sa.String(100), nullable=False),
        sa.Column('nid_number', sa.String(50), nullable=True),
        sa.Column('passport_number', sa.String(50), nullable=True),
        sa.Column('permanent_address', sa.String(500), nullable=False),
        sa.Column('phone_number', sa.String(30), nullable=False),
        sa.Column('vaccine_id', UUID(as_uuid=True), sa.ForeignKey('vaccines.id'), nullable=False),
        sa.Column('dose_number', sa.Integer(), nullable=False),
        sa.Column('date_administered', sa.Date(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_certificate_nid_vaccine', 'certificates', ['nid_number', 'vaccine_id'])
    op.create_index('idx_certificate_passport_vaccine', 'certificates', ['passport_number', 'vaccine_id'])
    # Un solo sucesor por certificado
    op.create_index(
        'uq_certificate_single_successor', 'certificates', ['previous_certificate_id'],
        unique=True, postgresql_where=sa.text('previous_certificate_id IS NOT NULL'),
    )

    # ── 5. vaccination_records ───────────────────────
    op.create_table(
        'vaccination_records',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('certificate_id', UUID(as_uuid=True), sa.ForeignKey('certificates.id'), nullable=False),
        sa.Column('vaccine_id', UUID(as_uuid=True), sa.ForeignKey('vaccines.id'), nullable=False),
        sa.Column('vaccine_name', sa.String(200), nullable=False),
        sa.Column('dose_number', sa.Integer(), nullable=False),
        sa.Column('date_administered', sa.Date(), nullable=False),
        sa.Column('vaccination_center', sa.String(200), nullable=False),
        sa.Column('vaccinated_by_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('vaccinated_by_name', sa.String(200), nullable=False),
        sa.Column('provider_id', UUID(as_uuid=True), sa.ForeignKey('vaccine_providers.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('certificate_id', 'dose_number', name='uq_vaccination_certificate_dose'),
    )
    op.create_index('idx_vaccination_vaccine', 'vaccination_records', ['vaccine_id'])

    # ── 6. booster_doses ─────────────────────────────
    op.create_table(
        'booster_doses',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('certificate_id', UUID(as_uuid=True), sa.ForeignKey('certificates.id'), nullable=False),
        sa.Column('vaccine_id', UUID(as_uuid=True), sa.ForeignKey('vaccines.id'), nullable=False),
        sa.Column('vaccine_name', sa.String(200), nullable=False),
        sa.Column('date_administered', sa.Date(), nullable=False),
        sa.Column('vaccination_center', sa.String(200), nullable=False),
        sa.Column('vaccinated_by_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('vaccinated_by_name', sa.String(200), nullable=False),
        sa.Column('provider_id', UUID(as_uuid=True), sa.ForeignKey('vaccine_providers.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_booster_doses_certificate_id', 'booster_doses', ['certificate_id'])

    # ── 7. audit_log ─────────────────────────────────
    op.create_table(
        'audit_log',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('entity', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=False),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('old_data', JSONB, nullable=True),
        sa.Column('new_data', JSONB, nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_audit_log_user_id', 'audit_log', ['user_id'])
    op.create_index('ix_audit_log_entity', 'audit_log', ['entity'])
    op.create_index('ix_audit_log_action', 'audit_log', ['action'])


def downgrade() -> None:
    op.drop_table('audit_log')
    op.drop_table('booster_doses')
    op.drop_index('idx_vaccination_vaccine', table_name='vaccination_records')
    op.drop_table('vaccination_records')
    op.drop_index('uq_certificate_single_successor', table_name='certificates')
    op.drop_index('idx_certificate_passport_vaccine', table_name='certificates')
    op.drop_index('idx_certificate_nid_vaccine', table_name='certificates')
    op.drop_table('certificates')
    op.drop_table('certificate_sequences')
    op.drop_table('vaccine_providers')
    op.drop_table('vaccines')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    op.execute("DROP TYPE IF EXISTS userrole CASCADE")
