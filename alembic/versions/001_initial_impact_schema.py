"""Initial schema for impacts, projects, pillars and focus areas

Revision ID: 001_initial_impact_schema
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_impact_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True):
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False))
    return columns


def upgrade():
    """Create initial schema"""

    # Users resolved from bearer tokens
    op.create_table('users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_superuser', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('permissions', sa.JSON(), nullable=False, server_default='[]'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_users')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Focus areas (kept in the categories table)
    op.create_table('categories',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_categories')
    )
    op.create_index('ix_categories_name', 'categories', ['name'], unique=True)

    op.create_table('pillars',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('order_index >= 0', name='ck_pillars_order_index_non_negative'),
        sa.PrimaryKeyConstraint('id', name='pk_pillars')
    )
    op.create_index('ix_pillars_name', 'pillars', ['name'])
    op.create_index('ix_pillars_is_active', 'pillars', ['is_active'])
    op.create_index('ix_pillars_active_order', 'pillars', ['is_active', 'order_index'])
    op.create_index('uq_pillars_active_name', 'pillars', [sa.text('lower(name)')], unique=True,
                    postgresql_where=sa.text('is_active'))

    op.create_table('pillar_focus_areas',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('pillar_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['pillar_id'], ['pillars.id'], ondelete='CASCADE',
                                name='fk_pillar_focus_areas_pillar_id_pillars'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='CASCADE',
                                name='fk_pillar_focus_areas_category_id_categories'),
        sa.PrimaryKeyConstraint('id', name='pk_pillar_focus_areas'),
        sa.UniqueConstraint('pillar_id', 'category_id', name='uq_pillar_focus_area')
    )
    op.create_index('ix_pillar_focus_areas_pillar_id', 'pillar_focus_areas', ['pillar_id'])
    op.create_index('ix_pillar_focus_areas_category_id', 'pillar_focus_areas', ['category_id'])

    op.create_table('countries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=2), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_countries')
    )
    op.create_index('ix_countries_name', 'countries', ['name'], unique=True)
    op.create_index('ix_countries_code', 'countries', ['code'], unique=True)

    op.create_table('impacts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit', sa.String(length=100), nullable=True),
        sa.Column('starting_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('icon', sa.String(length=255), nullable=True),
        sa.Column('color', sa.String(length=20), nullable=False, server_default='#1976d2'),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint('starting_value >= 0', name='ck_impacts_starting_value_non_negative'),
        sa.CheckConstraint('order_index >= 0', name='ck_impacts_order_index_non_negative'),
        sa.PrimaryKeyConstraint('id', name='pk_impacts')
    )
    op.create_index('ix_impacts_name', 'impacts', ['name'], unique=True)
    op.create_index('ix_impacts_is_active', 'impacts', ['is_active'])
    op.create_index('ix_impacts_is_featured', 'impacts', ['is_featured'])
    op.create_index('ix_impacts_active_order', 'impacts', ['is_active', 'order_index'])

    op.create_table('team_members',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('position', sa.String(length=255), nullable=True),
        sa.Column('pillar_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['pillar_id'], ['pillars.id'], ondelete='SET NULL',
                                name='fk_team_members_pillar_id_pillars'),
        sa.PrimaryKeyConstraint('id', name='pk_team_members')
    )
    op.create_index('ix_team_members_pillar_id', 'team_members', ['pillar_id'])
    op.create_index('ix_team_members_is_active', 'team_members', ['is_active'])

    project_status = sa.Enum('PLANNING', 'ONGOING', 'COMPLETED', 'ON_HOLD', name='projectstatusenum')

    op.create_table('projects',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('short_description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('status', project_status, nullable=False, server_default='PLANNING'),
        sa.Column('pillar_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('country_id', sa.Integer(), nullable=True),
        sa.Column('featured_image', sa.String(length=500), nullable=True),
        sa.Column('gallery', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('sdg_goals', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('testimonials', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_hidden', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('order_index >= 0', name='ck_projects_order_index_non_negative'),
        sa.ForeignKeyConstraint(['pillar_id'], ['pillars.id'], name='fk_projects_pillar_id_pillars'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='SET NULL',
                                name='fk_projects_category_id_categories'),
        sa.ForeignKeyConstraint(['country_id'], ['countries.id'], ondelete='SET NULL',
                                name='fk_projects_country_id_countries'),
        sa.PrimaryKeyConstraint('id', name='pk_projects')
    )
    op.create_index('ix_projects_slug', 'projects', ['slug'], unique=True)
    op.create_index('ix_projects_status', 'projects', ['status'])
    op.create_index('ix_projects_pillar_id', 'projects', ['pillar_id'])
    op.create_index('ix_projects_category_id', 'projects', ['category_id'])
    op.create_index('ix_projects_country_id', 'projects', ['country_id'])
    op.create_index('ix_projects_is_featured', 'projects', ['is_featured'])
    op.create_index('ix_projects_is_hidden', 'projects', ['is_hidden'])
    op.create_index('ix_projects_is_deleted', 'projects', ['is_deleted'])
    op.create_index('ix_projects_visible', 'projects', ['is_deleted', 'is_hidden', 'order_index'])
    op.create_index('ix_projects_featured_visible', 'projects', ['is_featured', 'is_hidden', 'is_deleted'])

    op.create_table('project_focus_areas',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE',
                                name='fk_project_focus_areas_project_id_projects'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='CASCADE',
                                name='fk_project_focus_areas_category_id_categories'),
        sa.PrimaryKeyConstraint('id', name='pk_project_focus_areas'),
        sa.UniqueConstraint('project_id', 'category_id', name='uq_project_focus_area')
    )
    op.create_index('ix_project_focus_areas_project_id', 'project_focus_areas', ['project_id'])
    op.create_index('ix_project_focus_areas_category_id', 'project_focus_areas', ['category_id'])

    # One row per (project, impact); the pair is unique
    op.create_table('project_impacts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('impact_id', sa.Integer(), nullable=False),
        sa.Column('contribution_value', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint('contribution_value >= 0', name='ck_project_impacts_contribution_value_non_negative'),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE',
                                name='fk_project_impacts_project_id_projects'),
        sa.ForeignKeyConstraint(['impact_id'], ['impacts.id'], ondelete='CASCADE',
                                name='fk_project_impacts_impact_id_impacts'),
        sa.PrimaryKeyConstraint('id', name='pk_project_impacts'),
        sa.UniqueConstraint('project_id', 'impact_id', name='uq_project_impact')
    )
    op.create_index('ix_project_impacts_project_id', 'project_impacts', ['project_id'])
    op.create_index('ix_project_impacts_impact_id', 'project_impacts', ['impact_id'])


def downgrade():
    """Drop all tables"""
    op.drop_table('project_impacts')
    op.drop_table('project_focus_areas')
    op.drop_table('projects')
    sa.Enum(name='projectstatusenum').drop(op.get_bind(), checkfirst=True)
    op.drop_table('team_members')
    op.drop_table('impacts')
    op.drop_table('countries')
    op.drop_table('pillar_focus_areas')
    op.drop_table('pillars')
    op.drop_table('categories')
    op.drop_table('users')
