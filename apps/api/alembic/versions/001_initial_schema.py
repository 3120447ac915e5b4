"""initial schema

Revision ID: 001
Revises:
Create Date: 2025-01-06 00:00:00.000000

"""
import uuid
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _id():
    return sa.Column('id', sa.Uuid(), primary_key=True)


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)


def _user_fk(name, nullable=False, ondelete='CASCADE'):
    return sa.Column(name, sa.Uuid(), sa.ForeignKey('users.id', ondelete=ondelete), nullable=nullable)


def upgrade() -> None:
    # --- users ---
    op.create_table(
        'users',
        _id(),
        sa.Column('auth_id', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('role', sa.Text(), nullable=False),
        sa.Column('coach_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('slug', sa.Text(), nullable=True, unique=True),
        sa.Column('avatar_url', sa.Text(), nullable=True),
        sa.Column('goal', sa.Text(), nullable=True),
        sa.Column('starting_weight', sa.Float(), nullable=True),
        sa.Column('current_weight', sa.Float(), nullable=True),
        sa.Column('workout_split', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), server_default='active', nullable=False),
        sa.Column('inactive_since', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stripe_customer_id', sa.Text(), nullable=True),
        sa.Column('payment_failed_attempts', sa.Integer(), server_default='0', nullable=False),
        sa.Column('access_status', sa.Text(), server_default='active', nullable=False),
        sa.Column('email_notifications', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('app_notifications', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('weekly_summary', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('font_size', sa.Text(), server_default='medium', nullable=False),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("role IN ('coach', 'client')", name='ck_users_role'),
    )
    op.create_index('ix_users_auth_id', 'users', ['auth_id'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_coach_id', 'users', ['coach_id'])
    op.create_index('ix_users_stripe_customer_id', 'users', ['stripe_customer_id'])

    op.create_table(
        'client_invitations',
        _id(),
        _user_fk('coach_id'),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('token', sa.Text(), nullable=False, unique=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index('ix_client_invitations_coach_id', 'client_invitations', ['coach_id'])
    op.create_index('ix_client_invitations_email', 'client_invitations', ['email'])

    op.create_table(
        'coach_updates',
        _id(),
        _user_fk('coach_id'),
        _user_fk('client_id'),
        sa.Column('message', sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index('ix_coach_updates_coach_id', 'coach_updates', ['coach_id'])
    op.create_index('ix_coach_updates_client_id', 'coach_updates', ['client_id'])

    op.create_table(
        'check_ins',
        _id(),
        _user_fk('coach_id'),
        _user_fk('client_id'),
        sa.Column('notes', sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index('ix_check_ins_coach_id', 'check_ins', ['coach_id'])
    op.create_index('ix_check_ins_client_id', 'check_ins', ['client_id'])

    op.create_table(
        'weight_logs',
        _id(),
        _user_fk('user_id'),
        sa.Column('weight', sa.Float(), nullable=False),
        sa.Column('logged_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_weight_logs_user_id', 'weight_logs', ['user_id'])

    # --- meal plans ---
    op.create_table(
        'meal_plans',
        _id(),
        _user_fk('user_id', nullable=True),
        _user_fk('coach_id', nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_template', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('template_id', sa.Uuid(), sa.ForeignKey('meal_plans.id', ondelete='SET NULL'), nullable=True),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_meal_plans_user_id', 'meal_plans', ['user_id'])
    op.create_index('ix_meal_plans_coach_id', 'meal_plans', ['coach_id'])
    op.create_index('ix_meal_plans_user_active', 'meal_plans', ['user_id', 'is_active'])

    op.create_table(
        'meals',
        _id(),
        sa.Column('meal_plan_id', sa.Uuid(), sa.ForeignKey('meal_plans.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('time', sa.Text(), nullable=True),
        sa.Column('sequence_order', sa.Integer(), server_default='0', nullable=False),
    )
    op.create_index('ix_meals_meal_plan_id', 'meals', ['meal_plan_id'])

    op.create_table(
        'foods',
        _id(),
        sa.Column('meal_id', sa.Uuid(), sa.ForeignKey('meals.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('portion', sa.Text(), nullable=True),
        sa.Column('calories', sa.Float(), nullable=True),
        sa.Column('protein', sa.Float(), nullable=True),
        sa.Column('carbs', sa.Float(), nullable=True),
        sa.Column('fat', sa.Float(), nullable=True),
        sa.Column('sequence_order', sa.Integer(), server_default='0', nullable=False),
    )
    op.create_index('ix_foods_meal_id', 'foods', ['meal_id'])

    op.create_table(
        'meal_completions',
        _id(),
        _user_fk('user_id'),
        sa.Column('meal_id', sa.Uuid(), sa.ForeignKey('meals.id', ondelete='CASCADE'), nullable=False),
        sa.Column('completed_at', sa.Date(), nullable=False),
        _created_at(),
        sa.UniqueConstraint('user_id', 'meal_id', 'completed_at', name='uq_meal_completion_day'),
    )
    op.create_index('ix_meal_completions_user_id', 'meal_completions', ['user_id'])
    op.create_index('ix_meal_completions_meal_id', 'meal_completions', ['meal_id'])
    op.create_index('ix_meal_completions_user_day', 'meal_completions', ['user_id', 'completed_at'])

    # --- workout plans ---
    op.create_table(
        'workout_plans',
        _id(),
        _user_fk('user_id', nullable=True),
        _user_fk('coach_id', nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('builder_mode', sa.Text(), server_default='week', nullable=False),
        sa.Column('workout_days_per_week', sa.Integer(), server_default='7', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_template', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('template_id', sa.Uuid(), sa.ForeignKey('workout_plans.id', ondelete='SET NULL'), nullable=True),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("builder_mode IN ('week', 'day')", name='ck_workout_plans_builder_mode'),
        sa.CheckConstraint('workout_days_per_week BETWEEN 1 AND 7', name='ck_workout_plans_days_per_week'),
    )
    op.create_index('ix_workout_plans_user_id', 'workout_plans', ['user_id'])
    op.create_index('ix_workout_plans_coach_id', 'workout_plans', ['coach_id'])
    op.create_index('ix_workout_plans_user_active', 'workout_plans', ['user_id', 'is_active'])

    op.create_table(
        'workout_days',
        _id(),
        sa.Column('workout_plan_id', sa.Uuid(), sa.ForeignKey('workout_plans.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day_of_week', sa.Text(), nullable=False),
        sa.Column('is_rest', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('workout_name', sa.Text(), nullable=True),
        sa.Column('workout_type', sa.Text(), nullable=True),
        sa.Column('sequence_order', sa.Integer(), server_default='0', nullable=False),
    )
    op.create_index('ix_workout_days_workout_plan_id', 'workout_days', ['workout_plan_id'])

    op.create_table(
        'workout_exercises',
        _id(),
        sa.Column('workout_day_id', sa.Uuid(), sa.ForeignKey('workout_days.id', ondelete='CASCADE'), nullable=False),
        sa.Column('group_type', sa.Text(), server_default='Single', nullable=False),
        sa.Column('sequence_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('exercise_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('exercise_name', sa.Text(), nullable=False),
        sa.Column('exercise_description', sa.Text(), nullable=True),
        sa.Column('video_url', sa.Text(), nullable=True),
        sa.Column('sets_data', JSONType, nullable=True),
        sa.Column('group_notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_workout_exercises_workout_day_id', 'workout_exercises', ['workout_day_id'])

    op.create_table(
        'workout_completions',
        _id(),
        _user_fk('user_id'),
        sa.Column('workout_plan_id', sa.Uuid(), sa.ForeignKey('workout_plans.id', ondelete='SET NULL'), nullable=True),
        sa.Column('completed_at', sa.Date(), nullable=False),
        sa.Column('completed_groups', JSONType, nullable=False),
        _created_at(),
        sa.UniqueConstraint('user_id', 'completed_at', name='uq_workout_completion_day'),
    )
    op.create_index('ix_workout_completions_user_id', 'workout_completions', ['user_id'])

    op.create_table(
        'workout_personal_bests',
        _id(),
        _user_fk('user_id'),
        sa.Column('exercise_id', sa.Uuid(), sa.ForeignKey('workout_exercises.id', ondelete='CASCADE'), nullable=False),
        sa.Column('weight', sa.Float(), nullable=False),
        sa.Column('reps', sa.Integer(), nullable=True),
        _updated_at(),
        sa.UniqueConstraint('user_id', 'exercise_id', name='uq_personal_best_exercise'),
    )
    op.create_index('ix_workout_personal_bests_user_id', 'workout_personal_bests', ['user_id'])

    # --- supplements ---
    op.create_table(
        'supplements',
        _id(),
        _user_fk('user_id'),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('dosage', sa.Text(), nullable=True),
        sa.Column('frequency', sa.Text(), nullable=True),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('active_from', sa.Date(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_supplements_user_id', 'supplements', ['user_id'])

    op.create_table(
        'supplement_completions',
        _id(),
        _user_fk('user_id'),
        sa.Column('supplement_id', sa.Uuid(), sa.ForeignKey('supplements.id', ondelete='CASCADE'), nullable=False),
        sa.Column('completed_at', sa.Date(), nullable=False),
        _created_at(),
        sa.UniqueConstraint('user_id', 'supplement_id', 'completed_at', name='uq_supplement_completion_day'),
    )
    op.create_index('ix_supplement_completions_user_id', 'supplement_completions', ['user_id'])
    op.create_index('ix_supplement_completions_supplement_id', 'supplement_completions', ['supplement_id'])

    # --- check-in forms ---
    op.create_table(
        'check_in_forms',
        _id(),
        _user_fk('coach_id'),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_check_in_forms_coach_id', 'check_in_forms', ['coach_id'])

    op.create_table(
        'check_in_form_questions',
        _id(),
        sa.Column('form_id', sa.Uuid(), sa.ForeignKey('check_in_forms.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_type', sa.Text(), nullable=False),
        sa.Column('is_required', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('options', JSONType, nullable=True),
        sa.Column('order_index', sa.Integer(), server_default='0', nullable=False),
    )
    op.create_index('ix_check_in_form_questions_form_id', 'check_in_form_questions', ['form_id'])

    op.create_table(
        'check_in_form_instances',
        _id(),
        sa.Column('form_id', sa.Uuid(), sa.ForeignKey('check_in_forms.id', ondelete='CASCADE'), nullable=False),
        _user_fk('client_id'),
        _user_fk('coach_id'),
        sa.Column('status', sa.Text(), server_default='sent', nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('sent', 'completed', 'expired')", name='ck_check_in_instances_status'),
    )
    op.create_index('ix_check_in_form_instances_form_id', 'check_in_form_instances', ['form_id'])
    op.create_index('ix_check_in_form_instances_client_id', 'check_in_form_instances', ['client_id'])
    op.create_index('ix_check_in_form_instances_coach_id', 'check_in_form_instances', ['coach_id'])
    op.create_index('ix_check_in_instances_status_expires', 'check_in_form_instances', ['status', 'expires_at'])

    op.create_table(
        'check_in_form_responses',
        _id(),
        sa.Column('instance_id', sa.Uuid(), sa.ForeignKey('check_in_form_instances.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_id', sa.Uuid(), sa.ForeignKey('check_in_form_questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('response_text', sa.Text(), nullable=True),
        sa.Column('response_number', sa.Float(), nullable=True),
        sa.Column('response_options', JSONType, nullable=True),
        _created_at(),
    )
    op.create_index('ix_check_in_form_responses_instance_id', 'check_in_form_responses', ['instance_id'])

    # --- chat ---
    op.create_table(
        'chats',
        _id(),
        _user_fk('coach_id'),
        _user_fk('client_id'),
        sa.Column('sender', sa.Text(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_chats_thread_timestamp', 'chats', ['coach_id', 'client_id', 'timestamp'])

    op.create_table(
        'chat_last_seen',
        _id(),
        _user_fk('user_id'),
        _user_fk('coach_id'),
        _user_fk('client_id'),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('user_id', 'coach_id', 'client_id', name='uq_chat_last_seen_thread'),
    )

    # --- habits ---
    op.create_table(
        'habit_presets',
        _id(),
        _user_fk('coach_id', nullable=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('preset_type', sa.Text(), server_default='custom', nullable=False),
        sa.Column('target_value', sa.Float(), nullable=True),
        sa.Column('unit', sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_habit_presets_coach_id', 'habit_presets', ['coach_id'])

    op.create_table(
        'client_habits',
        _id(),
        _user_fk('client_id'),
        _user_fk('coach_id'),
        sa.Column('habit_preset_id', sa.Uuid(), sa.ForeignKey('habit_presets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('frequency', sa.Text(), server_default='daily', nullable=False),
        sa.Column('times_per_week', sa.Integer(), nullable=True),
        _created_at(),
        sa.UniqueConstraint('client_id', 'habit_preset_id', name='uq_client_habit_preset'),
    )
    op.create_index('ix_client_habits_client_id', 'client_habits', ['client_id'])

    op.create_table(
        'habit_completions',
        _id(),
        sa.Column('client_habit_id', sa.Uuid(), sa.ForeignKey('client_habits.id', ondelete='CASCADE'), nullable=False),
        _user_fk('client_id'),
        sa.Column('completed_at', sa.Date(), nullable=False),
        sa.Column('value', sa.Float(), nullable=True),
        _created_at(),
        sa.UniqueConstraint('client_habit_id', 'completed_at', name='uq_habit_completion_day'),
    )
    op.create_index('ix_habit_completions_client_habit_id', 'habit_completions', ['client_habit_id'])
    op.create_index('ix_habit_completions_client_id', 'habit_completions', ['client_id'])

    op.create_table(
        'habit_notes',
        _id(),
        _user_fk('client_id'),
        _user_fk('author_id'),
        sa.Column('author_role', sa.Text(), nullable=False),
        sa.Column('client_habit_id', sa.Uuid(), sa.ForeignKey('client_habits.id', ondelete='CASCADE'), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index('ix_habit_notes_client_id', 'habit_notes', ['client_id'])

    # System presets every coach can assign
    presets = sa.table(
        'habit_presets',
        sa.column('id', sa.Uuid()),
        sa.column('name', sa.Text()),
        sa.column('description', sa.Text()),
        sa.column('preset_type', sa.Text()),
        sa.column('target_value', sa.Float()),
        sa.column('unit', sa.Text()),
    )
    op.bulk_insert(presets, [
        {'id': uuid.uuid4(), 'name': 'Daily steps', 'description': 'Hit your step target', 'preset_type': 'steps', 'target_value': 10000, 'unit': 'steps'},
        {'id': uuid.uuid4(), 'name': 'Water intake', 'description': 'Drink enough water', 'preset_type': 'water', 'target_value': 3, 'unit': 'liters'},
        {'id': uuid.uuid4(), 'name': 'Sleep', 'description': 'Get a full night of sleep', 'preset_type': 'sleep', 'target_value': 8, 'unit': 'hours'},
        {'id': uuid.uuid4(), 'name': 'Meditation', 'description': 'Take time to meditate', 'preset_type': 'meditation', 'target_value': 10, 'unit': 'minutes'},
    ])

    # --- media ---
    op.create_table(
        'progress_photos',
        _id(),
        _user_fk('client_id'),
        sa.Column('storage_path', sa.Text(), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_progress_photos_client_id', 'progress_photos', ['client_id'])

    # --- billing ---
    op.create_table(
        'recurring_subscriptions',
        _id(),
        _user_fk('user_id'),
        _user_fk('coach_id', nullable=True, ondelete='SET NULL'),
        sa.Column('stripe_customer_id', sa.Text(), nullable=True),
        sa.Column('stripe_subscription_id', sa.Text(), nullable=False, unique=True),
        sa.Column('stripe_price_id', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), server_default=sa.false(), nullable=False),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_recurring_subscriptions_user_id', 'recurring_subscriptions', ['user_id'])
    op.create_index('ix_recurring_subscriptions_coach_id', 'recurring_subscriptions', ['coach_id'])
    op.create_index('ix_recurring_subscriptions_stripe_customer_id', 'recurring_subscriptions', ['stripe_customer_id'])
    op.create_index('ix_recurring_subscriptions_status', 'recurring_subscriptions', ['status'])

    op.create_table(
        'stripe_events',
        sa.Column('event_id', sa.Text(), primary_key=True),
        sa.Column('event_type', sa.Text(), nullable=False),
        sa.Column('stripe_created', sa.Integer(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_stripe_events_event_type', 'stripe_events', ['event_type'])


def downgrade() -> None:
    for table in (
        'stripe_events',
        'recurring_subscriptions',
        'progress_photos',
        'habit_notes',
        'habit_completions',
        'client_habits',
        'habit_presets',
        'chat_last_seen',
        'chats',
        'check_in_form_responses',
        'check_in_form_instances',
        'check_in_form_questions',
        'check_in_forms',
        'supplement_completions',
        'supplements',
        'workout_personal_bests',
        'workout_completions',
        'workout_exercises',
        'workout_days',
        'workout_plans',
        'meal_completions',
        'foods',
        'meals',
        'meal_plans',
        'weight_logs',
        'check_ins',
        'coach_updates',
        'client_invitations',
        'users',
    ):
        op.drop_table(table)
