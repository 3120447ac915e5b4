from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Float, Date, DateTime, ForeignKey, Text, Index, UniqueConstraint, JSON, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from core.database import Base
import uuid
from datetime import datetime, timezone

# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite).
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    A coach or a client.

    Identity comes from Supabase Auth: `auth_id` is the JWT `sub` of the
    session cookie. Clients point at their coach through `coach_id`.
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    auth_id = Column(Text, unique=True, nullable=False, index=True)
    email = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    role = Column(Text, nullable=False)  # 'coach' | 'client'
    coach_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    slug = Column(Text, unique=True, nullable=True)
    avatar_url = Column(Text, nullable=True)
    goal = Column(Text, nullable=True)

    starting_weight = Column(Float, nullable=True)
    current_weight = Column(Float, nullable=True)
    workout_split = Column(Text, nullable=True)

    status = Column(Text, default="active", nullable=False)  # 'active' | 'inactive'
    inactive_since = Column(DateTime(timezone=True), nullable=True)

    # --- BILLING ---
    stripe_customer_id = Column(Text, nullable=True, index=True)
    payment_failed_attempts = Column(Integer, default=0, nullable=False)
    access_status = Column(Text, default="active", nullable=False)  # 'active' | 'payment_required'

    # --- PREFERENCES ---
    email_notifications = Column(Boolean, default=True, nullable=False)
    app_notifications = Column(Boolean, default=True, nullable=False)
    weekly_summary = Column(Boolean, default=False, nullable=False)
    font_size = Column(Text, default="medium", nullable=False)

    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), onupdate=_now, nullable=False)

    coach = relationship("User", remote_side=[id], foreign_keys=[coach_id])

    __table_args__ = (
        CheckConstraint("role IN ('coach', 'client')", name="ck_users_role"),
    )

    @property
    def is_coach(self) -> bool:
        return self.role == "coach"


class ClientInvitation(Base):
    __tablename__ = "client_invitations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    coach_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    token = Column(Text, unique=True, nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)


class CoachUpdate(Base):
    """Short message a coach posts to one client's dashboard."""

    __tablename__ = "coach_updates"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    coach_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)


class CheckIn(Base):
    """Coach notes from a client check-in call."""

    __tablename__ = "check_ins"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    coach_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    notes = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)


class WeightLog(Base):
    __tablename__ = "weight_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    weight = Column(Float, nullable=False)
    logged_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)


# --- MEAL PLANS ---


class MealPlan(Base):
    """
    A client's meal plan, or a coach template (`is_template`, no client).

    Only one plan per client is active at a time. `activated_at` is set the
    first time a plan is activated; `deactivated_at` is stamped when another
    plan takes over. Compliance uses that window to decide which plan
    applied on a given day.
    """

    __tablename__ = "meal_plans"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    coach_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=False, nullable=False)
    is_template = Column(Boolean, default=False, nullable=False)
    template_id = Column(Uuid, ForeignKey("meal_plans.id", ondelete="SET NULL"), nullable=True)
    activated_at = Column(DateTime(timezone=True), nullable=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), onupdate=_now, nullable=False)

    meals = relationship(
        "Meal",
        back_populates="meal_plan",
        cascade="all, delete-orphan",
        order_by="Meal.sequence_order",
    )

    __table_args__ = (
        Index("ix_meal_plans_user_active", "user_id", "is_active"),
    )


class Meal(Base):
    __tablename__ = "meals"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    meal_plan_id = Column(Uuid, ForeignKey("meal_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    time = Column(Text, nullable=True)  # "HH:MM"; meals sharing name+time are A/B options
    sequence_order = Column(Integer, default=0, nullable=False)

    meal_plan = relationship("MealPlan", back_populates="meals")
    foods = relationship(
        "Food",
        back_populates="meal",
        cascade="all, delete-orphan",
        order_by="Food.sequence_order",
    )


class Food(Base):
    __tablename__ = "foods"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    meal_id = Column(Uuid, ForeignKey("meals.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    portion = Column(Text, nullable=True)
    calories = Column(Float, nullable=True)
    protein = Column(Float, nullable=True)
    carbs = Column(Float, nullable=True)
    fat = Column(Float, nullable=True)
    sequence_order = Column(Integer, default=0, nullable=False)

    meal = relationship("Meal", back_populates="foods")


class MealCompletion(Base):
    __tablename__ = "meal_completions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    meal_id = Column(Uuid, ForeignKey("meals.id", ondelete="CASCADE"), nullable=False, index=True)
    completed_at = Column(Date, nullable=False)  # local day in USER_TIMEZONE
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "meal_id", "completed_at", name="uq_meal_completion_day"),
        Index("ix_meal_completions_user_day", "user_id", "completed_at"),
    )


# --- WORKOUT PLANS ---


class WorkoutPlan(Base):
    """
    A client's workout plan, or a coach template.

    builder_mode 'week': one WorkoutDay per weekday name, rest days flagged.
    builder_mode 'day': WorkoutDays are reusable templates the client picks
    from; `workout_days_per_week` bounds how many rest days they may take.
    """

    __tablename__ = "workout_plans"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    coach_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    builder_mode = Column(Text, default="week", nullable=False)
    workout_days_per_week = Column(Integer, default=7, nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)
    is_template = Column(Boolean, default=False, nullable=False)
    template_id = Column(Uuid, ForeignKey("workout_plans.id", ondelete="SET NULL"), nullable=True)
    activated_at = Column(DateTime(timezone=True), nullable=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), onupdate=_now, nullable=False)

    days = relationship(
        "WorkoutDay",
        back_populates="workout_plan",
        cascade="all, delete-orphan",
        order_by="WorkoutDay.sequence_order",
    )

    __table_args__ = (
        CheckConstraint("builder_mode IN ('week', 'day')", name="ck_workout_plans_builder_mode"),
        CheckConstraint("workout_days_per_week BETWEEN 1 AND 7", name="ck_workout_plans_days_per_week"),
        Index("ix_workout_plans_user_active", "user_id", "is_active"),
    )


class WorkoutDay(Base):
    __tablename__ = "workout_days"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workout_plan_id = Column(Uuid, ForeignKey("workout_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Text, nullable=False)  # weekday name, or a template label in 'day' mode
    is_rest = Column(Boolean, default=False, nullable=False)
    workout_name = Column(Text, nullable=True)
    workout_type = Column(Text, nullable=True)
    sequence_order = Column(Integer, default=0, nullable=False)

    workout_plan = relationship("WorkoutPlan", back_populates="days")
    exercises = relationship(
        "WorkoutExercise",
        back_populates="workout_day",
        cascade="all, delete-orphan",
        order_by="[WorkoutExercise.sequence_order, WorkoutExercise.exercise_order]",
    )


class WorkoutExercise(Base):
    __tablename__ = "workout_exercises"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workout_day_id = Column(Uuid, ForeignKey("workout_days.id", ondelete="CASCADE"), nullable=False, index=True)
    group_type = Column(Text, default="Single", nullable=False)  # Single | Superset | Giant Set
    sequence_order = Column(Integer, default=0, nullable=False)  # group position within the day
    exercise_order = Column(Integer, default=0, nullable=False)  # position within the group
    exercise_name = Column(Text, nullable=False)
    exercise_description = Column(Text, nullable=True)
    video_url = Column(Text, nullable=True)
    sets_data = Column(JSONType, nullable=True)  # [{"set_number", "reps", "weight", "rest"}]
    group_notes = Column(Text, nullable=True)

    workout_day = relationship("WorkoutDay", back_populates="exercises")


class WorkoutCompletion(Base):
    """
    What a client finished on one day. An empty `completed_groups` list is a
    rest day taken in a flexible plan.
    """

    __tablename__ = "workout_completions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    workout_plan_id = Column(Uuid, ForeignKey("workout_plans.id", ondelete="SET NULL"), nullable=True)
    completed_at = Column(Date, nullable=False)
    completed_groups = Column(JSONType, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "completed_at", name="uq_workout_completion_day"),
    )


class WorkoutPersonalBest(Base):
    __tablename__ = "workout_personal_bests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise_id = Column(Uuid, ForeignKey("workout_exercises.id", ondelete="CASCADE"), nullable=False)
    weight = Column(Float, nullable=False)
    reps = Column(Integer, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), onupdate=_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "exercise_id", name="uq_personal_best_exercise"),
    )


# --- SUPPLEMENTS ---


class Supplement(Base):
    __tablename__ = "supplements"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    dosage = Column(Text, nullable=True)
    frequency = Column(Text, nullable=True)
    instructions = Column(Text, nullable=True)
    # First day the supplement counts toward compliance; defaults to the creation day.
    active_from = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)


class SupplementCompletion(Base):
    __tablename__ = "supplement_completions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    supplement_id = Column(Uuid, ForeignKey("supplements.id", ondelete="CASCADE"), nullable=False, index=True)
    completed_at = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "supplement_id", "completed_at", name="uq_supplement_completion_day"),
    )


# --- CHECK-IN FORMS ---


class CheckInForm(Base):
    __tablename__ = "check_in_forms"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    coach_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), onupdate=_now, nullable=False)

    questions = relationship(
        "CheckInFormQuestion",
        back_populates="form",
        cascade="all, delete-orphan",
        order_by="CheckInFormQuestion.order_index",
    )


class CheckInFormQuestion(Base):
    __tablename__ = "check_in_form_questions"

    QUESTION_TYPES = ("text", "textarea", "number", "select", "radio", "checkbox")

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    form_id = Column(Uuid, ForeignKey("check_in_forms.id", ondelete="CASCADE"), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    question_type = Column(Text, nullable=False)
    is_required = Column(Boolean, default=False, nullable=False)
    options = Column(JSONType, nullable=True)
    order_index = Column(Integer, default=0, nullable=False)

    form = relationship("CheckInForm", back_populates="questions")


class CheckInFormInstance(Base):
    """One sending of a form to a client: sent -> completed, or sent -> expired."""

    __tablename__ = "check_in_form_instances"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    form_id = Column(Uuid, ForeignKey("check_in_forms.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    coach_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Text, default="sent", nullable=False)
    sent_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    form = relationship("CheckInForm")
    responses = relationship(
        "CheckInFormResponse",
        back_populates="instance",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("status IN ('sent', 'completed', 'expired')", name="ck_check_in_instances_status"),
        Index("ix_check_in_instances_status_expires", "status", "expires_at"),
    )


class CheckInFormResponse(Base):
    __tablename__ = "check_in_form_responses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    instance_id = Column(Uuid, ForeignKey("check_in_form_instances.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Uuid, ForeignKey("check_in_form_questions.id", ondelete="CASCADE"), nullable=False)
    response_text = Column(Text, nullable=True)
    response_number = Column(Float, nullable=True)
    response_options = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)

    instance = relationship("CheckInFormInstance", back_populates="responses")
    question = relationship("CheckInFormQuestion")


# --- CHAT ---


class ChatMessage(Base):
    __tablename__ = "chats"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    coach_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    client_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    sender = Column(Text, nullable=False)  # 'coach' | 'client'
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_chats_thread_timestamp", "coach_id", "client_id", "timestamp"),
    )


class ChatLastSeen(Base):
    __tablename__ = "chat_last_seen"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    coach_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    client_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    last_seen_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "coach_id", "client_id", name="uq_chat_last_seen_thread"),
    )


# --- HABITS ---


class HabitPreset(Base):
    """Habit definition; `coach_id` NULL marks a system preset shared by all coaches."""

    __tablename__ = "habit_presets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    coach_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    preset_type = Column(Text, default="custom", nullable=False)  # steps | water | sleep | meditation | custom
    target_value = Column(Float, nullable=True)
    unit = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)


class ClientHabit(Base):
    __tablename__ = "client_habits"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    coach_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    habit_preset_id = Column(Uuid, ForeignKey("habit_presets.id", ondelete="CASCADE"), nullable=False)
    frequency = Column(Text, default="daily", nullable=False)  # daily | weekly | flexible
    times_per_week = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)

    preset = relationship("HabitPreset", lazy="joined")

    __table_args__ = (
        UniqueConstraint("client_id", "habit_preset_id", name="uq_client_habit_preset"),
    )


class HabitCompletion(Base):
    __tablename__ = "habit_completions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_habit_id = Column(Uuid, ForeignKey("client_habits.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    completed_at = Column(Date, nullable=False)
    value = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("client_habit_id", "completed_at", name="uq_habit_completion_day"),
    )


class HabitNote(Base):
    __tablename__ = "habit_notes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    author_role = Column(Text, nullable=False)
    client_habit_id = Column(Uuid, ForeignKey("client_habits.id", ondelete="CASCADE"), nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)


# --- MEDIA ---


class ProgressPhoto(Base):
    __tablename__ = "progress_photos"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    storage_path = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)


# --- BILLING ---


class RecurringSubscription(Base):
    """
    Stripe subscription mirror.

    Stripe is the billing source of truth; this table keeps a queryable copy
    for the coach dashboard, kept current by webhooks.
    """

    __tablename__ = "recurring_subscriptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    coach_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    stripe_customer_id = Column(Text, nullable=True, index=True)
    stripe_subscription_id = Column(Text, nullable=False, unique=True)
    stripe_price_id = Column(Text, nullable=True)
    status = Column(Text, nullable=True, index=True)  # active|trialing|past_due|canceled|...
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), onupdate=_now, nullable=False)


class StripeEvent(Base):
    """
    Processed Stripe events (idempotency guard).

    Stripe retries webhook deliveries; storing event ids makes webhook handling safe.
    """

    __tablename__ = "stripe_events"

    event_id = Column(Text, primary_key=True)  # Stripe event id (e.g., evt_*)
    event_type = Column(Text, nullable=False, index=True)
    stripe_created = Column(Integer, nullable=True)

    received_at = Column(DateTime(timezone=True), default=_now, server_default=func.now(), nullable=False)
