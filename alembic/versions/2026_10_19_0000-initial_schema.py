"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the marketplace ledger schema."""

    # ========================================================================
    # Create profiles table
    # ========================================================================
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('username', sa.String(100), nullable=True),
        sa.Column('profile_picture_url', sa.Text(), nullable=True),
        sa.Column('vitrine_slug', sa.String(100), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('credits_balance', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('earned_balance', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('last_withdrawal_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('credits_balance >= 0', name='ck_credits_balance_non_negative'),
        sa.CheckConstraint('earned_balance >= 0', name='ck_earned_balance_non_negative'),
        sa.CheckConstraint("role IN ('user', 'creator', 'developer')", name='ck_profile_role'),
        sa.UniqueConstraint('vitrine_slug', name='uq_profiles_vitrine_slug'),
    )

    # ========================================================================
    # Create content_items table
    # ========================================================================
    op.create_table(
        'content_items',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('creator_id', sa.String(255), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('price', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('blur_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tags', ARRAY(sa.String(50)), nullable=False, server_default='{}'),
        sa.Column('is_hidden', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('price >= 0', name='ck_content_price_non_negative'),
        sa.ForeignKeyConstraint(['creator_id'], ['profiles.id'], name='fk_content_items_creator', ondelete='CASCADE'),
    )

    # Indexes for content_items
    op.create_index('idx_content_items_visible_created', 'content_items', ['is_hidden', 'created_at'])
    op.create_index('idx_content_items_creator_id', 'content_items', ['creator_id'])

    # ========================================================================
    # Create media table
    # ========================================================================
    op.create_table(
        'media',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('content_item_id', sa.String(255), nullable=False),
        sa.Column('media_type', sa.String(10), nullable=False),
        sa.Column('storage_path', sa.Text(), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),

        sa.CheckConstraint("media_type IN ('image', 'video')", name='ck_media_type'),
        sa.ForeignKeyConstraint(['content_item_id'], ['content_items.id'], name='fk_media_content_item', ondelete='CASCADE'),
    )
    op.create_index('idx_media_content_item_id', 'media', ['content_item_id'])

    # ========================================================================
    # Create likes, shares and reactions tables
    # ========================================================================
    op.create_table(
        'likes',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('content_item_id', sa.String(255), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.ForeignKeyConstraint(['content_item_id'], ['content_items.id'], name='fk_likes_content_item', ondelete='CASCADE'),
        sa.UniqueConstraint('content_item_id', 'user_id', name='uq_like_item_user'),
    )

    op.create_table(
        'shares',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('content_item_id', sa.String(255), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.ForeignKeyConstraint(['content_item_id'], ['content_items.id'], name='fk_shares_content_item', ondelete='CASCADE'),
        sa.UniqueConstraint('content_item_id', 'user_id', name='uq_share_item_user'),
    )

    op.create_table(
        'reactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('content_item_id', sa.String(255), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('emoji', sa.String(16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.ForeignKeyConstraint(['content_item_id'], ['content_items.id'], name='fk_reactions_content_item', ondelete='CASCADE'),
        sa.UniqueConstraint('content_item_id', 'user_id', name='uq_reaction_item_user'),
    )

    # ========================================================================
    # Create unlocked_content table
    # ========================================================================
    op.create_table(
        'unlocked_content',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('content_item_id', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.UniqueConstraint('user_id', 'content_item_id', name='uq_unlocked_user_item'),
    )
    op.create_index('idx_unlocked_content_user_id', 'unlocked_content', ['user_id'])

    # ========================================================================
    # Create followers table
    # ========================================================================
    op.create_table(
        'followers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('follower_id', sa.String(255), nullable=False),
        sa.Column('following_id', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.UniqueConstraint('follower_id', 'following_id', name='uq_follower_pair'),
        sa.CheckConstraint('follower_id <> following_id', name='ck_no_self_follow'),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('followers')
    op.drop_table('unlocked_content')
    op.drop_table('reactions')
    op.drop_table('shares')
    op.drop_table('likes')
    op.drop_index('idx_media_content_item_id', table_name='media')
    op.drop_table('media')
    op.drop_table('content_items')
    op.drop_table('profiles')
