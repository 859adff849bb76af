"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(12, 2)


def _enum(name, *values):
    return sa.Enum(*values, name=name)


def _scoped_columns():
    """id, clinic scope, audit stamps and soft delete shared by clinic-owned tables"""
    return [
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('clinic_id', sa.String(length=36), sa.ForeignKey('clinics.id'), nullable=False),
        sa.Column('created_by', sa.String(length=36), nullable=True),
        sa.Column('updated_by', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    ]


def _scoped_indexes(table):
    op.create_index(f'ix_{table}_clinic_id', table, ['clinic_id'], unique=False)
    op.create_index(f'ix_{table}_deleted_at', table, ['deleted_at'], unique=False)


def upgrade() -> None:
    # Clinics and users
    op.create_table(
        'clinics',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_clinics_slug', 'clinics', ['slug'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('clinic_id', sa.String(length=36), sa.ForeignKey('clinics.id'), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('role', _enum('userrole', 'SUPER_ADMIN', 'CLINIC_ADMIN', 'DOCTOR', 'CLINICAL_STAFF',
                                'FRONT_DESK', 'BILLING'), nullable=False),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_clinic_id', 'users', ['clinic_id'], unique=False)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('clinic_id', sa.String(length=36), sa.ForeignKey('clinics.id'), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('action', _enum('auditaction', 'CREATE', 'READ', 'UPDATE', 'DELETE', 'LOGIN', 'APPROVE',
                                  'REJECT', 'PROCESS', 'SIGN', 'SYSTEM'), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.String(length=36), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('request_id', sa.String(length=64), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('clinic_id', 'user_id', 'action', 'entity', 'entity_id', 'timestamp'):
        op.create_index(f'ix_audit_logs_{column}', 'audit_logs', [column], unique=False)

    # Patients
    op.create_table(
        'patients',
        *_scoped_columns(),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
    )
    _scoped_indexes('patients')
    op.create_index('ix_patients_email', 'patients', ['email'], unique=False)

    # Treatment
    op.create_table(
        'treatment_plans',
        *_scoped_columns(),
        sa.Column('plan_number', sa.String(length=32), nullable=False),
        sa.Column('patient_id', sa.String(length=36), sa.ForeignKey('patients.id'), nullable=False),
        sa.Column('primary_provider_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('supervising_provider_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('plan_name', sa.String(length=200), nullable=False),
        sa.Column('plan_type', sa.String(length=100), nullable=True),
        sa.Column('status', _enum('treatmentplanstatus', 'DRAFT', 'PRESENTED', 'ACCEPTED', 'ACTIVE', 'ON_HOLD',
                                  'COMPLETED', 'DISCONTINUED'), nullable=False),
        sa.Column('chief_complaint', sa.Text(), nullable=True),
        sa.Column('diagnosis', sa.JSON(), nullable=False),
        sa.Column('treatment_goals', sa.JSON(), nullable=False),
        sa.Column('treatment_description', sa.Text(), nullable=True),
        sa.Column('estimated_duration', sa.Integer(), nullable=True),
        sa.Column('estimated_visits', sa.Integer(), nullable=True),
        sa.Column('total_fee', MONEY, nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('estimated_end_date', sa.Date(), nullable=True),
        sa.Column('actual_end_date', sa.Date(), nullable=True),
        sa.Column('presented_date', sa.Date(), nullable=True),
        sa.Column('accepted_date', sa.Date(), nullable=True),
        sa.Column('status_notes', sa.Text(), nullable=True),
    )
    _scoped_indexes('treatment_plans')
    for column in ('plan_number', 'patient_id', 'primary_provider_id', 'status'):
        op.create_index(f'ix_treatment_plans_{column}', 'treatment_plans', [column], unique=False)

    op.create_table(
        'progress_notes',
        *_scoped_columns(),
        sa.Column('patient_id', sa.String(length=36), sa.ForeignKey('patients.id'), nullable=False),
        sa.Column('treatment_plan_id', sa.String(length=36), sa.ForeignKey('treatment_plans.id'), nullable=True),
        sa.Column('provider_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('supervising_provider_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('note_date', sa.DateTime(), nullable=False),
        sa.Column('note_type', _enum('progressnotetype', 'INITIAL_EXAM', 'CONSULTATION', 'RECORDS_APPOINTMENT',
                                     'BONDING', 'ADJUSTMENT', 'EMERGENCY', 'DEBOND', 'RETENTION_CHECK',
                                     'OBSERVATION', 'GENERAL'), nullable=False),
        sa.Column('status', _enum('notestatus', 'DRAFT', 'PENDING_SIGNATURE', 'SIGNED', 'PENDING_COSIGN',
                                  'COSIGNED', 'AMENDED'), nullable=False),
        sa.Column('chief_complaint', sa.Text(), nullable=True),
        sa.Column('subjective', sa.Text(), nullable=True),
        sa.Column('objective', sa.Text(), nullable=True),
        sa.Column('assessment', sa.Text(), nullable=True),
        sa.Column('plan', sa.Text(), nullable=True),
        sa.Column('procedures_summary', sa.Text(), nullable=True),
        sa.Column('signed_at', sa.DateTime(), nullable=True),
        sa.Column('signed_by', sa.String(length=36), nullable=True),
        sa.Column('cosigned_at', sa.DateTime(), nullable=True),
        sa.Column('cosigned_by', sa.String(length=36), nullable=True),
        sa.Column('amended_at', sa.DateTime(), nullable=True),
        sa.Column('amendment_reason', sa.Text(), nullable=True),
    )
    _scoped_indexes('progress_notes')
    for column in ('patient_id', 'treatment_plan_id', 'provider_id', 'status'):
        op.create_index(f'ix_progress_notes_{column}', 'progress_notes', [column], unique=False)

    # Billing
    op.create_table(
        'patient_accounts',
        *_scoped_columns(),
        sa.Column('account_number', sa.String(length=32), nullable=False),
        sa.Column('patient_id', sa.String(length=36), sa.ForeignKey('patients.id'), nullable=False),
        sa.Column('guarantor_id', sa.String(length=36), sa.ForeignKey('patients.id'), nullable=True),
        sa.Column('account_type', _enum('accounttype', 'INDIVIDUAL', 'FAMILY', 'INSURANCE_ONLY', 'COURTESY'),
                  nullable=False),
        sa.Column('status', _enum('accountstatus', 'ACTIVE', 'SUSPENDED', 'COLLECTIONS', 'CLOSED'),
                  nullable=False),
        sa.Column('current_balance', MONEY, nullable=False),
        sa.Column('insurance_balance', MONEY, nullable=False),
        sa.Column('patient_balance', MONEY, nullable=False),
        sa.Column('credit_balance', MONEY, nullable=False),
        sa.Column('aging_30', MONEY, nullable=False),
        sa.Column('aging_60', MONEY, nullable=False),
        sa.Column('aging_90', MONEY, nullable=False),
        sa.Column('aging_120_plus', MONEY, nullable=False),
        sa.Column('balance_updated_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    _scoped_indexes('patient_accounts')
    for column in ('account_number', 'patient_id', 'guarantor_id', 'status'):
        op.create_index(f'ix_patient_accounts_{column}', 'patient_accounts', [column], unique=False)

    op.create_table(
        'invoices',
        *_scoped_columns(),
        sa.Column('invoice_number', sa.String(length=32), nullable=False),
        sa.Column('account_id', sa.String(length=36), sa.ForeignKey('patient_accounts.id'), nullable=False),
        sa.Column('patient_id', sa.String(length=36), sa.ForeignKey('patients.id'), nullable=False),
        sa.Column('status', _enum('invoicestatus', 'DRAFT', 'PENDING', 'SENT', 'PARTIAL', 'PAID', 'OVERDUE',
                                  'VOID'), nullable=False),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('line_items', sa.JSON(), nullable=False),
        sa.Column('subtotal', MONEY, nullable=False),
        sa.Column('adjustments', MONEY, nullable=False),
        sa.Column('total_amount', MONEY, nullable=False),
        sa.Column('insurance_amount', MONEY, nullable=False),
        sa.Column('patient_amount', MONEY, nullable=False),
        sa.Column('paid_amount', MONEY, nullable=False),
        sa.Column('balance', MONEY, nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('voided_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    _scoped_indexes('invoices')
    for column in ('invoice_number', 'account_id', 'patient_id', 'status'):
        op.create_index(f'ix_invoices_{column}', 'invoices', [column], unique=False)

    op.create_table(
        'credit_balances',
        *_scoped_columns(),
        sa.Column('account_id', sa.String(length=36), sa.ForeignKey('patient_accounts.id'), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('remaining_amount', MONEY, nullable=False),
        sa.Column('source', _enum('creditsource', 'OVERPAYMENT', 'REFUND', 'ADJUSTMENT', 'PROMOTIONAL',
                                  'TRANSFER'), nullable=False),
        sa.Column('source_id', sa.String(length=36), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('status', _enum('creditstatus', 'AVAILABLE', 'APPLIED', 'EXPIRED', 'VOIDED'), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
    )
    _scoped_indexes('credit_balances')
    op.create_index('ix_credit_balances_account_id', 'credit_balances', ['account_id'], unique=False)
    op.create_index('ix_credit_balances_status', 'credit_balances', ['status'], unique=False)

    op.create_table(
        'payment_plans',
        *_scoped_columns(),
        sa.Column('plan_number', sa.String(length=32), nullable=False),
        sa.Column('account_id', sa.String(length=36), sa.ForeignKey('patient_accounts.id'), nullable=False),
        sa.Column('treatment_plan_id', sa.String(length=36), sa.ForeignKey('treatment_plans.id'), nullable=True),
        sa.Column('total_amount', MONEY, nullable=False),
        sa.Column('down_payment', MONEY, nullable=False),
        sa.Column('financed_amount', MONEY, nullable=False),
        sa.Column('installment_amount', MONEY, nullable=False),
        sa.Column('number_of_payments', sa.Integer(), nullable=False),
        sa.Column('frequency', _enum('paymentfrequency', 'WEEKLY', 'BIWEEKLY', 'MONTHLY'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('next_payment_date', sa.Date(), nullable=True),
        sa.Column('remaining_balance', MONEY, nullable=False),
        sa.Column('auto_pay_enabled', sa.Boolean(), nullable=False),
        sa.Column('payment_method_token', sa.String(length=255), nullable=True),
        sa.Column('status', _enum('paymentplanstatus', 'PENDING', 'ACTIVE', 'PAUSED', 'COMPLETED', 'CANCELLED',
                                  'DEFAULTED'), nullable=False),
        sa.Column('activated_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    _scoped_indexes('payment_plans')
    for column in ('plan_number', 'account_id', 'status'):
        op.create_index(f'ix_payment_plans_{column}', 'payment_plans', [column], unique=False)

    op.create_table(
        'scheduled_payments',
        *_scoped_columns(),
        sa.Column('payment_plan_id', sa.String(length=36), sa.ForeignKey('payment_plans.id'), nullable=False),
        sa.Column('installment_number', sa.Integer(), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('scheduled_date', sa.DateTime(), nullable=False),
        sa.Column('status', _enum('scheduledpaymentstatus', 'PENDING', 'PROCESSING', 'COMPLETED', 'FAILED',
                                  'SKIPPED', 'CANCELLED'), nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False),
        sa.Column('last_attempt_at', sa.DateTime(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('result_payment_id', sa.String(length=36), nullable=True),
        sa.Column('failure_reason', sa.String(length=500), nullable=True),
    )
    _scoped_indexes('scheduled_payments')
    for column in ('payment_plan_id', 'scheduled_date', 'status'):
        op.create_index(f'ix_scheduled_payments_{column}', 'scheduled_payments', [column], unique=False)

    # Payments
    op.create_table(
        'payments',
        *_scoped_columns(),
        sa.Column('payment_number', sa.String(length=32), nullable=False),
        sa.Column('account_id', sa.String(length=36), sa.ForeignKey('patient_accounts.id'), nullable=False),
        sa.Column('patient_id', sa.String(length=36), sa.ForeignKey('patients.id'), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('payment_date', sa.DateTime(), nullable=False),
        sa.Column('payment_type', _enum('paymenttype', 'PATIENT', 'INSURANCE', 'OTHER'), nullable=False),
        sa.Column('payment_method_type', _enum('paymentmethodtype', 'CASH', 'CHECK', 'CREDIT_CARD', 'DEBIT_CARD',
                                               'ACH', 'OTHER'), nullable=False),
        sa.Column('source_type', _enum('paymentsourcetype', 'MANUAL', 'PAYMENT_PLAN', 'PAYMENT_LINK'),
                  nullable=False),
        sa.Column('source_id', sa.String(length=36), nullable=True),
        sa.Column('gateway', sa.String(length=32), nullable=True),
        sa.Column('gateway_payment_id', sa.String(length=100), nullable=True),
        sa.Column('status', _enum('paymentstatus', 'PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'REFUNDED',
                                  'PARTIALLY_REFUNDED', 'CANCELLED'), nullable=False),
        sa.Column('failure_reason', sa.String(length=500), nullable=True),
        sa.Column('card_last4', sa.String(length=4), nullable=True),
        sa.Column('card_brand', sa.String(length=32), nullable=True),
        sa.Column('check_number', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
    )
    _scoped_indexes('payments')
    for column in ('payment_number', 'account_id', 'patient_id', 'payment_date', 'status'):
        op.create_index(f'ix_payments_{column}', 'payments', [column], unique=False)

    op.create_table(
        'payment_allocations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('clinic_id', sa.String(length=36), sa.ForeignKey('clinics.id'), nullable=False),
        sa.Column('payment_id', sa.String(length=36), sa.ForeignKey('payments.id'), nullable=False),
        sa.Column('invoice_id', sa.String(length=36), sa.ForeignKey('invoices.id'), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('clinic_id', 'payment_id', 'invoice_id'):
        op.create_index(f'ix_payment_allocations_{column}', 'payment_allocations', [column], unique=False)

    op.create_table(
        'refunds',
        *_scoped_columns(),
        sa.Column('refund_number', sa.String(length=32), nullable=False),
        sa.Column('payment_id', sa.String(length=36), sa.ForeignKey('payments.id'), nullable=False),
        sa.Column('account_id', sa.String(length=36), sa.ForeignKey('patient_accounts.id'), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=False),
        sa.Column('refund_type', _enum('refundtype', 'FULL', 'PARTIAL'), nullable=False),
        sa.Column('status', _enum('refundstatus', 'PENDING', 'APPROVED', 'REJECTED', 'PROCESSING', 'COMPLETED',
                                  'FAILED'), nullable=False),
        sa.Column('requested_by', sa.String(length=36), nullable=True),
        sa.Column('approved_by', sa.String(length=36), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approval_notes', sa.Text(), nullable=True),
        sa.Column('rejected_by', sa.String(length=36), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('processed_by', sa.String(length=36), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('gateway_refund_id', sa.String(length=100), nullable=True),
        sa.Column('failure_reason', sa.String(length=500), nullable=True),
    )
    _scoped_indexes('refunds')
    for column in ('refund_number', 'payment_id', 'account_id', 'status'):
        op.create_index(f'ix_refunds_{column}', 'refunds', [column], unique=False)

    # Resources
    op.create_table(
        'rooms',
        *_scoped_columns(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('room_number', sa.String(length=20), nullable=False),
        sa.Column('room_type', _enum('roomtype', 'OPERATORY', 'CONSULTATION', 'X_RAY', 'STERILIZATION', 'LAB',
                                     'STORAGE', 'RECEPTION', 'OFFICE'), nullable=False),
        sa.Column('status', _enum('roomstatus', 'ACTIVE', 'MAINTENANCE', 'CLOSED', 'RENOVATION'), nullable=False),
        sa.Column('floor', sa.String(length=20), nullable=True),
        sa.Column('wing', sa.String(length=50), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False),
        sa.Column('capabilities', sa.JSON(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    _scoped_indexes('rooms')
    op.create_index('ix_rooms_room_number', 'rooms', ['room_number'], unique=False)
    op.create_index('ix_rooms_status', 'rooms', ['status'], unique=False)

    op.create_table(
        'treatment_chairs',
        *_scoped_columns(),
        sa.Column('room_id', sa.String(length=36), sa.ForeignKey('rooms.id'), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('chair_number', sa.String(length=20), nullable=False),
        sa.Column('status', _enum('chairstatus', 'ACTIVE', 'IN_REPAIR', 'OUT_OF_SERVICE', 'RETIRED'),
                  nullable=False),
        sa.Column('condition', _enum('chaircondition', 'EXCELLENT', 'GOOD', 'FAIR', 'POOR'), nullable=False),
        sa.Column('manufacturer', sa.String(length=100), nullable=True),
        sa.Column('model_number', sa.String(length=100), nullable=True),
        sa.Column('serial_number', sa.String(length=100), nullable=True),
        sa.Column('has_delivery_unit', sa.Boolean(), nullable=False),
        sa.Column('has_suction', sa.Boolean(), nullable=False),
        sa.Column('has_light', sa.Boolean(), nullable=False),
        sa.Column('last_maintenance_date', sa.Date(), nullable=True),
        sa.Column('next_maintenance_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    _scoped_indexes('treatment_chairs')
    op.create_index('ix_treatment_chairs_room_id', 'treatment_chairs', ['room_id'], unique=False)
    op.create_index('ix_treatment_chairs_status', 'treatment_chairs', ['status'], unique=False)

    # Staff
    op.create_table(
        'training_records',
        *_scoped_columns(),
        sa.Column('staff_user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('provider', sa.String(length=200), nullable=True),
        sa.Column('duration_hours', sa.Float(), nullable=True),
        sa.Column('credits', sa.Float(), nullable=True),
        sa.Column('assigned_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('started_date', sa.Date(), nullable=True),
        sa.Column('completed_date', sa.Date(), nullable=True),
        sa.Column('expiration_date', sa.Date(), nullable=True),
        sa.Column('status', _enum('trainingstatus', 'ASSIGNED', 'NOT_STARTED', 'IN_PROGRESS', 'COMPLETED',
                                  'OVERDUE', 'WAIVED'), nullable=False),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('passed', sa.Boolean(), nullable=True),
        sa.Column('certificate_url', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    _scoped_indexes('training_records')
    for column in ('staff_user_id', 'category', 'due_date', 'expiration_date', 'status'):
        op.create_index(f'ix_training_records_{column}', 'training_records', [column], unique=False)


def downgrade() -> None:
    for table in (
        'training_records', 'treatment_chairs', 'rooms', 'refunds', 'payment_allocations', 'payments',
        'scheduled_payments', 'payment_plans', 'credit_balances', 'invoices', 'patient_accounts',
        'progress_notes', 'treatment_plans', 'patients', 'audit_logs', 'users', 'clinics',
    ):
        op.drop_table(table)

    if op.get_bind().dialect.name == 'postgresql':
        for enum_name in (
            'trainingstatus', 'chaircondition', 'chairstatus', 'roomstatus', 'roomtype', 'refundstatus',
            'refundtype', 'paymentstatus', 'paymentsourcetype', 'paymentmethodtype', 'paymenttype',
            'scheduledpaymentstatus', 'paymentplanstatus', 'paymentfrequency', 'creditstatus', 'creditsource',
            'invoicestatus', 'accountstatus', 'accounttype', 'notestatus', 'progressnotetype',
            'treatmentplanstatus', 'auditaction', 'userrole',
        ):
            sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
