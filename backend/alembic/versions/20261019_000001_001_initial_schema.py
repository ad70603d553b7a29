"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Create items table
    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(120), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('seller_uid', sa.String(128), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('co2_kg', sa.Float(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_items_category', 'items', ['category'], unique=False)
    op.create_index('ix_items_seller_uid', 'items', ['seller_uid'], unique=False)
    op.create_index('ix_items_status', 'items', ['status'], unique=False)

    # Create conversations table
    op.create_table(
        'conversations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('seller_uid', sa.String(128), nullable=False),
        sa.Column('buyer_uid', sa.String(128), nullable=True),
        sa.Column('mode', sa.String(10), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['item_id'], ['items.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('item_id', 'buyer_uid', name='uq_conversations_item_buyer')
    )
    op.create_index('ix_conversations_item_id', 'conversations', ['item_id'], unique=False)
    op.create_index('ix_conversations_seller_uid', 'conversations', ['seller_uid'], unique=False)
    op.create_index('ix_conversations_buyer_uid', 'conversations', ['buyer_uid'], unique=False)
    op.create_index(
        'uq_conversations_item_thread',
        'conversations',
        ['item_id'],
        unique=True,
        postgresql_where=sa.text("mode = 'thread'"),
    )

    # Create messages table
    op.create_table(
        'messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('conversation_id', sa.Integer(), nullable=False),
        sa.Column('sender_uid', sa.String(128), nullable=False),
        sa.Column('sender_name', sa.String(100), nullable=True),
        sa.Column('sender_icon_url', sa.Text(), nullable=True),
        sa.Column('parent_message_id', sa.Integer(), nullable=True),
        sa.Column('depth', sa.Integer(), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_message_id'], ['messages.id'], ondelete='CASCADE')
    )
    op.create_index('ix_messages_conversation_id', 'messages', ['conversation_id'], unique=False)

    # Create conversation_read_states table
    op.create_table(
        'conversation_read_states',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('conversation_id', sa.Integer(), nullable=False),
        sa.Column('uid', sa.String(128), nullable=False),
        sa.Column('last_read_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_read_message_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('conversation_id', 'uid', name='uq_read_states_conversation_uid')
    )
    op.create_index('ix_conversation_read_states_uid', 'conversation_read_states', ['uid'], unique=False)

    # Create purchases table
    op.create_table(
        'purchases',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('buyer_uid', sa.String(128), nullable=False),
        sa.Column('seller_uid', sa.String(128), nullable=False),
        sa.Column('conversation_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('shipping_qr_url', sa.Text(), nullable=False),
        sa.Column('shipping_note', sa.Text(), nullable=False),
        sa.Column('points_used', sa.Integer(), nullable=False),
        sa.Column('amount_paid', sa.Integer(), nullable=False),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['item_id'], ['items.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='SET NULL')
    )
    op.create_index('ix_purchases_item_id', 'purchases', ['item_id'], unique=False)
    op.create_index('ix_purchases_buyer_uid', 'purchases', ['buyer_uid'], unique=False)
    op.create_index('ix_purchases_seller_uid', 'purchases', ['seller_uid'], unique=False)
    op.create_index('ix_purchases_status', 'purchases', ['status'], unique=False)
    # One active (non-canceled) purchase per item
    op.create_index(
        'uq_purchases_active_item',
        'purchases',
        ['item_id'],
        unique=True,
        postgresql_where=sa.text("status <> 'canceled'"),
    )

    # Create notifications table
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_uid', sa.String(128), nullable=False),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('conversation_id', sa.Integer(), nullable=True),
        sa.Column('purchase_id', sa.Integer(), nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['item_id'], ['items.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id'], ondelete='SET NULL')
    )
    op.create_index('ix_notifications_user_uid', 'notifications', ['user_uid'], unique=False)
    op.create_index('ix_notifications_type', 'notifications', ['type'], unique=False)
    op.create_index('ix_notifications_user_unread', 'notifications', ['user_uid', 'read_at'], unique=False)

    # Create ledger tables
    op.create_table(
        'user_revenues',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('uid', sa.String(128), nullable=False),
        sa.Column('total', sa.BigInteger(), nullable=False),
        sa.Column('balance', sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uid'),
        sa.CheckConstraint('balance >= 0', name='ck_user_revenues_balance_non_negative')
    )
    op.create_table(
        'user_tree_points',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('uid', sa.String(128), nullable=False),
        sa.Column('total', sa.Float(), nullable=False),
        sa.Column('balance', sa.Float(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uid'),
        sa.CheckConstraint('balance >= 0', name='ck_user_tree_points_balance_non_negative')
    )


def downgrade() -> None:
    op.drop_table('user_tree_points')
    op.drop_table('user_revenues')
    op.drop_index('ix_notifications_user_unread', table_name='notifications')
    op.drop_index('ix_notifications_type', table_name='notifications')
    op.drop_index('ix_notifications_user_uid', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('uq_purchases_active_item', table_name='purchases')
    op.drop_index('ix_purchases_status', table_name='purchases')
    op.drop_index('ix_purchases_seller_uid', table_name='purchases')
    op.drop_index('ix_purchases_buyer_uid', table_name='purchases')
    op.drop_index('ix_purchases_item_id', table_name='purchases')
    op.drop_table('purchases')
    op.drop_index('ix_conversation_read_states_uid', table_name='conversation_read_states')
    op.drop_table('conversation_read_states')
    op.drop_index('ix_messages_conversation_id', table_name='messages')
    op.drop_table('messages')
    op.drop_index('uq_conversations_item_thread', table_name='conversations')
    op.drop_index('ix_conversations_buyer_uid', table_name='conversations')
    op.drop_index('ix_conversations_seller_uid', table_name='conversations')
    op.drop_index('ix_conversations_item_id', table_name='conversations')
    op.drop_table('conversations')
    op.drop_index('ix_items_status', table_name='items')
    op.drop_index('ix_items_seller_uid', table_name='items')
    op.drop_index('ix_items_category', table_name='items')
    op.drop_table('items')
