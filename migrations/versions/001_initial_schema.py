"""Initial schema with versions and gitweb_repositories tables

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

Tables:
- versions: project releases; size_tar is written once by analysis.filesize
- gitweb_repositories: repositories found by crawler.gitweb; downloaded is
  written once by download.git

Indexes:
- versions(project, version) - UNIQUE
- gitweb_repositories(git_url) - UNIQUE, crawler idempotency
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'versions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('project', sa.String(255), nullable=False),
        sa.Column('version', sa.String(100), nullable=False),
        sa.Column('size_tar', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_versions_project', 'versions', ['project'])
    op.create_index('ix_versions_project_version', 'versions', ['project', 'version'], unique=True)

    op.create_table(
        'gitweb_repositories',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('project', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('git_url', sa.String(500), nullable=False),
        sa.Column('downloaded', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('git_url', name='uq_gitweb_repositories_git_url'),
    )
    op.create_index('ix_gitweb_repositories_project', 'gitweb_repositories', ['project'])


def downgrade() -> None:
    op.drop_index('ix_gitweb_repositories_project', table_name='gitweb_repositories')
    op.drop_table('gitweb_repositories')
    op.drop_index('ix_versions_project_version', table_name='versions')
    op.drop_index('ix_versions_project', table_name='versions')
    op.drop_table('versions')
