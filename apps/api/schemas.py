from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime, date
from uuid import UUID
from typing import Any, Optional, List


class ApiModel(BaseModel):
    """Request body base: the web client posts camelCase, snake_case also accepted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- USERS ---


class UserResponse(BaseModel):
    id: UUID
    email: str
    name: str
    role: str
    coach_id: Optional[UUID] = None
    slug: Optional[str] = None
    avatar_url: Optional[str] = None
    goal: Optional[str] = None
    starting_weight: Optional[float] = None
    current_weight: Optional[float] = None
    workout_split: Optional[str] = None
    status: str
    inactive_since: Optional[datetime] = None
    access_status: str
    email_notifications: bool
    app_notifications: bool
    weekly_summary: bool
    font_size: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WeightLogResponse(BaseModel):
    id: UUID
    weight: float
    logged_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- MEAL PLANS ---


class FoodIn(BaseModel):
    name: str = Field(min_length=1)
    portion: Optional[str] = None
    calories: Optional[float] = None
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None


class MealIn(BaseModel):
    name: str = Field(min_length=1)
    time: Optional[str] = None
    foods: List[FoodIn] = []


class FoodResponse(FoodIn):
    id: UUID

    model_config = ConfigDict(from_attributes=True)


class MealResponse(BaseModel):
    id: UUID
    name: str
    time: Optional[str] = None
    sequence_order: int
    foods: List[FoodResponse] = []

    model_config = ConfigDict(from_attributes=True)


class MealPlanResponse(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    coach_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    is_active: bool
    is_template: bool
    template_id: Optional[UUID] = None
    activated_at: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None
    created_at: datetime
    meals: List[MealResponse] = []

    model_config = ConfigDict(from_attributes=True)


# --- WORKOUT PLANS ---


class SetIn(BaseModel):
    set_number: int
    reps: Optional[Any] = None
    weight: Optional[float] = None
    rest: Optional[str] = None
    notes: Optional[str] = None


class ExerciseIn(BaseModel):
    exercise_name: str = Field(min_length=1)
    exercise_description: Optional[str] = None
    video_url: Optional[str] = None
    sets_data: List[SetIn] = []


class ExerciseGroupIn(BaseModel):
    """A Single, Superset or Giant Set: exercises performed back to back."""
    group_type: str = "Single"
    group_notes: Optional[str] = None
    exercises: List[ExerciseIn] = Field(min_length=1)


class WorkoutDayIn(BaseModel):
    day_of_week: str
    is_rest: bool = False
    workout_name: Optional[str] = None
    workout_type: Optional[str] = None
    groups: List[ExerciseGroupIn] = []


class WorkoutExerciseResponse(BaseModel):
    id: UUID
    group_type: str
    sequence_order: int
    exercise_order: int
    exercise_name: str
    exercise_description: Optional[str] = None
    video_url: Optional[str] = None
    sets_data: Optional[List[dict]] = None
    group_notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class WorkoutDayResponse(BaseModel):
    id: UUID
    day_of_week: str
    is_rest: bool
    workout_name: Optional[str] = None
    workout_type: Optional[str] = None
    sequence_order: int
    exercises: List[WorkoutExerciseResponse] = []

    model_config = ConfigDict(from_attributes=True)


class WorkoutPlanResponse(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    coach_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    builder_mode: str
    workout_days_per_week: int
    is_active: bool
    is_template: bool
    template_id: Optional[UUID] = None
    activated_at: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None
    created_at: datetime
    days: List[WorkoutDayResponse] = []

    model_config = ConfigDict(from_attributes=True)


# --- SUPPLEMENTS ---


class SupplementResponse(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    instructions: Optional[str] = None
    active_from: Optional[date] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- CHECK-IN FORMS ---


class QuestionIn(BaseModel):
    question_text: str = Field(min_length=1)
    question_type: str
    is_required: bool = False
    options: Optional[List[str]] = None

    @field_validator("question_type")
    @classmethod
    def _known_type(cls, v: str) -> str:
        if v not in ("text", "textarea", "number", "select", "radio", "checkbox"):
            raise ValueError(f"Unsupported question type: {v}")
        return v


class QuestionResponse(BaseModel):
    id: UUID
    question_text: str
    question_type: str
    is_required: bool
    options: Optional[List[str]] = None
    order_index: int

    model_config = ConfigDict(from_attributes=True)


class CheckInFormResponse(BaseModel):
    id: UUID
    coach_id: UUID
    title: str
    description: Optional[str] = None
    is_active: bool
    created_at: datetime
    questions: List[QuestionResponse] = []

    model_config = ConfigDict(from_attributes=True)


class AnswerResponse(BaseModel):
    question_id: UUID
    response_text: Optional[str] = None
    response_number: Optional[float] = None
    response_options: Optional[List[str]] = None

    model_config = ConfigDict(from_attributes=True)


class CheckInInstanceResponse(BaseModel):
    id: UUID
    form_id: UUID
    client_id: UUID
    coach_id: UUID
    status: str
    sent_at: datetime
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    form: Optional[CheckInFormResponse] = None
    responses: List[AnswerResponse] = []

    model_config = ConfigDict(from_attributes=True)


# --- HABITS ---


class HabitPresetResponse(BaseModel):
    id: UUID
    coach_id: Optional[UUID] = None
    name: str
    description: Optional[str] = None
    preset_type: str
    target_value: Optional[float] = None
    unit: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ClientHabitResponse(BaseModel):
    id: UUID
    client_id: UUID
    habit_preset_id: UUID
    frequency: str
    times_per_week: Optional[int] = None
    created_at: datetime
    preset: Optional[HabitPresetResponse] = None

    model_config = ConfigDict(from_attributes=True)


# --- CHAT ---


class ChatMessageResponse(BaseModel):
    id: UUID
    coach_id: UUID
    client_id: UUID
    sender: str
    content: str
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)
