"""add group invitations and notification seq

Revision ID: b41f06c8e5d2
Revises: 7c2e91d4a0b3
Create Date: 2026-10-19 16:03:27.551904

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b41f06c8e5d2'
down_revision: Union[str, Sequence[str], None] = '7c2e91d4a0b3'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column('notifications', sa.Column('seq', sa.Integer(), nullable=False, server_default='0'))
    op.create_index('ix_notifications_user_id_seq', 'notifications', ['user_id', 'seq'])

    op.create_table(
        'group_invitations',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('group_id', sa.String(), sa.ForeignKey('groups.id', ondelete='CASCADE'), nullable=False),
        sa.Column('inviter_id', sa.String(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('invitee_id', sa.String(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('message', sa.String(500), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('responded_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_group_invitations_group_id', 'group_invitations', ['group_id'])
    op.create_index('ix_group_invitations_invitee_id', 'group_invitations', ['invitee_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('group_invitations')
    op.drop_index('ix_notifications_user_id_seq', table_name='notifications')
    op.drop_column('notifications', 'seq')
