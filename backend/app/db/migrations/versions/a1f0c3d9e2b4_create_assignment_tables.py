"""create users, salla_auth, order_assignments, high_priority_orders

Revision ID: a1f0c3d9e2b4
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1f0c3d9e2b4'
down_revision = None
branch_labels = None
depends_on = None


STATUS_VALUES = ('assigned', 'preparing', 'shipped', 'completed', 'removed')
ACTIVE_VALUES = ('assigned', 'preparing', 'shipped')
ACTIVE_WHERE = "status IN ({})".format(", ".join(f"'{v}'" for v in ACTIVE_VALUES))


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('is_superuser', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'salla_auth',
        sa.Column('merchant_id', sa.String(length=64), primary_key=True, nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'order_assignments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('merchant_id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE',
                  name='fk_order_assignments_user_id_users'), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='assigned'),
        sa.Column('remote_status', sa.String(length=64), nullable=True),
        sa.Column('remote_synced', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('order_snapshot', sa.JSON(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'order_id', name='uq_order_assignments_user_id_order_id'),
        sa.CheckConstraint(
            "status IN ({})".format(", ".join(f"'{v}'" for v in STATUS_VALUES)),
            name='ck_order_assignments_status_valid',
        ),
    )
    op.create_index('ix_order_assignments_user_id', 'order_assignments', ['user_id'])
    op.create_index('ix_order_assignments_merchant_status', 'order_assignments', ['merchant_id', 'status'])
    # 抢单互斥：一单同时只属于一个人；一人同时只有一单
    op.create_index(
        'uq_order_assignments_active_order', 'order_assignments', ['merchant_id', 'order_id'],
        unique=True, postgresql_where=sa.text(ACTIVE_WHERE), sqlite_where=sa.text(ACTIVE_WHERE),
    )
    op.create_index(
        'uq_order_assignments_active_user', 'order_assignments', ['user_id'],
        unique=True, postgresql_where=sa.text(ACTIVE_WHERE), sqlite_where=sa.text(ACTIVE_WHERE),
    )

    op.create_table(
        'high_priority_orders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('merchant_id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL',
                  name='fk_high_priority_orders_created_by_users'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('merchant_id', 'order_id', name='uq_high_priority_orders_merchant_id_order_id'),
    )
    op.create_index('ix_high_priority_orders_merchant_created', 'high_priority_orders', ['merchant_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_high_priority_orders_merchant_created', table_name='high_priority_orders')
    op.drop_table('high_priority_orders')

    op.drop_index('uq_order_assignments_active_user', table_name='order_assignments')
    op.drop_index('uq_order_assignments_active_order', table_name='order_assignments')
    op.drop_index('ix_order_assignments_merchant_status', table_name='order_assignments')
    op.drop_index('ix_order_assignments_user_id', table_name='order_assignments')
    op.drop_table('order_assignments')

    op.drop_table('salla_auth')

    op.drop_index('ix_users_username', table_name='users')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')
