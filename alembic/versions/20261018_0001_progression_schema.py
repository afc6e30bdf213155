"""Progression schema - skills, week plans, milestones

Revision ID: 0001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Skills table
    op.create_table(
        'skills',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('quest_id', sa.Uuid(), nullable=False),
        sa.Column('goal_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('topic', sa.String(255), nullable=False, default=''),
        sa.Column('topics', sa.JSON(), nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('success_signal', sa.Text(), nullable=False),
        sa.Column('locked_variables', sa.JSON(), nullable=False),
        sa.Column('estimated_minutes', sa.Integer(), nullable=False),
        sa.Column('skill_type', sa.String(20), nullable=False),
        sa.Column('depth', sa.Integer(), nullable=False, default=0),
        sa.Column('difficulty', sa.String(20), nullable=False),
        sa.Column('is_compound', sa.Boolean(), nullable=False, default=False),
        sa.Column('component_skill_ids', sa.JSON(), nullable=False),
        sa.Column('component_quest_ids', sa.JSON(), nullable=False),
        sa.Column('combination_context', sa.Text(), nullable=True),
        sa.Column('prerequisite_skill_ids', sa.JSON(), nullable=False),
        sa.Column('prerequisite_quest_ids', sa.JSON(), nullable=False),
        sa.Column('week_number', sa.Integer(), nullable=False),
        sa.Column('day_in_week', sa.Integer(), nullable=False),
        sa.Column('day_in_quest', sa.Integer(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('adversarial_element', sa.Text(), nullable=True),
        sa.Column('failure_mode', sa.Text(), nullable=True),
        sa.Column('recovery_steps', sa.Text(), nullable=True),
        sa.Column('transfer_scenario', sa.Text(), nullable=True),
        sa.Column('source_stage_title', sa.String(255), nullable=True),
        sa.Column('source_stage_index', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('mastery', sa.String(20), nullable=False),
        sa.Column('pass_count', sa.Integer(), nullable=False, default=0),
        sa.Column('fail_count', sa.Integer(), nullable=False, default=0),
        sa.Column('consecutive_passes', sa.Integer(), nullable=False, default=0),
        sa.Column('last_outcome', sa.String(20), nullable=True),
        sa.Column('unlocked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('mastered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_practiced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, default=1),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_skills_quest_id', 'skills', ['quest_id'])
    op.create_index('ix_skills_goal_id', 'skills', ['goal_id'])
    op.create_index('ix_skills_user_id', 'skills', ['user_id'])
    op.create_index('ix_skills_skill_type', 'skills', ['skill_type'])
    op.create_index('ix_skills_status', 'skills', ['status'])
    op.create_index('ix_skills_goal_status', 'skills', ['goal_id', 'status'])
    op.create_index('ix_skills_quest_order', 'skills', ['quest_id', 'sort_order'])

    # Week plans table
    op.create_table(
        'week_plans',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('goal_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('quest_id', sa.Uuid(), nullable=False),
        sa.Column('week_number', sa.Integer(), nullable=False),
        sa.Column('week_in_quest', sa.Integer(), nullable=False, default=1),
        sa.Column('is_first_week_of_quest', sa.Boolean(), nullable=False, default=False),
        sa.Column('is_last_week_of_quest', sa.Boolean(), nullable=False, default=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('theme', sa.String(255), nullable=False, default=''),
        sa.Column('weekly_competence', sa.Text(), nullable=False, default=''),
        sa.Column('days', sa.JSON(), nullable=False),
        sa.Column('scheduled_skill_ids', sa.JSON(), nullable=False),
        sa.Column('carry_forward_skill_ids', sa.JSON(), nullable=False),
        sa.Column('completed_skill_ids', sa.JSON(), nullable=False),
        sa.Column('foundation_count', sa.Integer(), nullable=False, default=0),
        sa.Column('building_count', sa.Integer(), nullable=False, default=0),
        sa.Column('compound_count', sa.Integer(), nullable=False, default=0),
        sa.Column('has_synthesis', sa.Boolean(), nullable=False, default=False),
        sa.Column('drills_total', sa.Integer(), nullable=False, default=0),
        sa.Column('drills_completed', sa.Integer(), nullable=False, default=0),
        sa.Column('drills_passed', sa.Integer(), nullable=False, default=0),
        sa.Column('drills_failed', sa.Integer(), nullable=False, default=0),
        sa.Column('drills_skipped', sa.Integer(), nullable=False, default=0),
        sa.Column('skills_mastered', sa.Integer(), nullable=False, default=0),
        sa.Column('next_week_focus', sa.Text(), nullable=True),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, default=1),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_week_plans_goal_id', 'week_plans', ['goal_id'])
    op.create_index('ix_week_plans_quest_id', 'week_plans', ['quest_id'])
    op.create_index('ix_week_plans_status', 'week_plans', ['status'])
    op.create_index('ix_week_plans_goal_week', 'week_plans', ['goal_id', 'week_number'])

    # Milestones table (one per quest)
    op.create_table(
        'milestones',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('quest_id', sa.Uuid(), nullable=False, unique=True),
        sa.Column('goal_id', sa.Uuid(), nullable=False),
        sa.Column('synthesis_skill_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('artifact', sa.Text(), nullable=False),
        sa.Column('acceptance_criteria', sa.JSON(), nullable=False),
        sa.Column('estimated_minutes', sa.Integer(), nullable=False),
        sa.Column('required_mastery_percent', sa.Float(), nullable=False, default=0.75),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('unlocked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_milestones_goal_id', 'milestones', ['goal_id'])


def downgrade() -> None:
    op.drop_table('milestones')
    op.drop_table('week_plans')
    op.drop_table('skills')
