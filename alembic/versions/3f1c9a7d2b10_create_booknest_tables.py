"""create booknest purchase tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 10:12:41.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('wallet_balance', sa.Float(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('wallet_balance >= 0', name='ck_user_wallet_non_negative'),
    )
    op.create_index('ix_user_email', 'user', ['email'], unique=True)

    op.create_table(
        'book',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('author', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=False, server_default=''),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('verification_status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('sales_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pdf_file', sa.String(), nullable=True),
        sa.Column('cover_image', sa.String(), nullable=True),
        sa.Column('seller_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_book_seller_id', 'book', ['seller_id'])

    op.create_table(
        'userbooklink',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('book_id', sa.Integer(), sa.ForeignKey('book.id'), nullable=False),
        sa.Column('relation', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'book_id', 'relation', name='uq_user_book_relation'),
    )
    op.create_index('ix_userbooklink_user_id', 'userbooklink', ['user_id'])
    op.create_index('ix_userbooklink_book_id', 'userbooklink', ['book_id'])

    op.create_table(
        'purchase',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('buyer_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('book_id', sa.Integer(), sa.ForeignKey('book.id'), nullable=False),
        sa.Column('seller_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('payment_method', sa.String(), nullable=False),
        sa.Column('razorpay_order_id', sa.String(), nullable=True),
        sa.Column('razorpay_payment_id', sa.String(), nullable=True, unique=True),
        sa.Column('razorpay_signature', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('pdf_delivered', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('pdf_delivery_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_delivery_attempt', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_purchase_buyer_id', 'purchase', ['buyer_id'])
    op.create_index('ix_purchase_book_id', 'purchase', ['book_id'])
    op.create_index('ix_purchase_seller_id', 'purchase', ['seller_id'])
    op.create_index('ix_purchase_razorpay_order_id', 'purchase', ['razorpay_order_id'])
    op.create_index(
        'uq_purchase_completed_buyer_book',
        'purchase',
        ['buyer_id', 'book_id'],
        unique=True,
        postgresql_where=sa.text("status = 'completed'"),
    )

    op.create_table(
        'emaillog',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('purchase_id', sa.Integer(), sa.ForeignKey('purchase.id'), nullable=True),
        sa.Column('to_email', sa.String(), nullable=False),
        sa.Column('subject', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('error', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_emaillog_purchase_id', 'emaillog', ['purchase_id'])


def downgrade() -> None:
    op.drop_table('emaillog')
    op.drop_index('uq_purchase_completed_buyer_book', table_name='purchase')
    op.drop_table('purchase')
    op.drop_table('userbooklink')
    op.drop_table('book')
    op.drop_index('ix_user_email', table_name='user')
    op.drop_table('user')
