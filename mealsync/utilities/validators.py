"""
Input validation schemas using Pydantic for better data integrity.
"""
import re
from datetime import time
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

from mealsync.utilities.constants import (
    ALL_DAYS, TIME_OF_DAY_BUCKETS, MIN_ENERGY_LEVEL, MAX_ENERGY_LEVEL
)
from mealsync.utilities.config import DEFAULT_PRE_ALERT_MINUTES

_TIME_RE = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?$')


def parse_time_of_day(value: str) -> time:
    """Parse "HH:MM" or "HH:MM:SS" into a time; raises ValueError otherwise."""
    if isinstance(value, time):
        return value
    m = _TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if not m:
        raise ValueError(f'Invalid time format: {value!r} (expected HH:MM or HH:MM:SS)')
    hour, minute, second = int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        raise ValueError(f'Time out of range: {value!r}')
    return time(hour, minute, second)


class StartSessionInput(BaseModel):
    """Schema for starting a cooking session."""
    recipe_id: str = Field(..., min_length=1)
    breakdown_id: Optional[str] = None
    energy_level: Optional[int] = Field(None, ge=MIN_ENERGY_LEVEL, le=MAX_ENERGY_LEVEL)
    total_steps: Optional[int] = Field(None, ge=0, le=500)


class CompleteStepInput(BaseModel):
    """Schema for a step completion."""
    step_index: int = Field(..., ge=0)
    step_text: Optional[str] = None
    time_taken_seconds: Optional[int] = Field(None, ge=0)
    skipped: bool = False
    difficulty_rating: Optional[int] = Field(None, ge=1, le=5)
    notes: Optional[str] = None


class CreateTimerInput(BaseModel):
    """Schema for a new cooking timer."""
    name: str = Field(..., min_length=1, max_length=100)
    duration_seconds: int = Field(..., ge=1, le=24 * 3600)
    step_index: Optional[int] = Field(None, ge=0)

    @field_validator('name')
    @classmethod
    def strip_whitespace(cls, v):
        """Remove leading/trailing whitespace."""
        v = v.strip()
        if not v:
            raise ValueError('Timer name cannot be empty')
        return v


class MealReminderInput(BaseModel):
    """Schema for creating or editing a meal reminder."""
    name: str = Field(..., min_length=1, max_length=100)
    scheduled_time: str
    pre_alert_minutes: int = Field(DEFAULT_PRE_ALERT_MINUTES, ge=0, le=24 * 60)
    enabled: bool = True
    days_of_week: List[int] = Field(default_factory=lambda: list(ALL_DAYS))

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        """Validate reminder name."""
        if not v.strip():
            raise ValueError('Reminder name cannot be empty')
        return v.strip()

    @field_validator('scheduled_time')
    @classmethod
    def validate_time(cls, v):
        """Normalize to HH:MM:SS."""
        return parse_time_of_day(v).strftime('%H:%M:%S')

    @field_validator('days_of_week')
    @classmethod
    def validate_days(cls, v):
        """Days are 0 (Sunday) .. 6 (Saturday); duplicates collapse."""
        for day in v:
            if day not in ALL_DAYS:
                raise ValueError(f'Invalid day of week: {day}')
        return sorted(set(v))


class RecordEnergyInput(BaseModel):
    """Schema for an energy snapshot."""
    energy_level: int = Field(..., ge=MIN_ENERGY_LEVEL, le=MAX_ENERGY_LEVEL)
    context: Optional[str] = Field(None, max_length=200)


class FavoriteMealInput(BaseModel):
    """Schema for saving or updating a favorite meal."""
    meal_name: str = Field(..., min_length=1, max_length=200)
    energy_level: int = Field(..., ge=MIN_ENERGY_LEVEL, le=MAX_ENERGY_LEVEL)
    recipe_id: Optional[str] = None
    typical_time_of_day: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('meal_name')
    @classmethod
    def strip_whitespace(cls, v):
        """Remove leading/trailing whitespace."""
        return v.strip()

    @field_validator('typical_time_of_day')
    @classmethod
    def validate_time_of_day(cls, v):
        if v is not None and v not in TIME_OF_DAY_BUCKETS:
            raise ValueError(f'Invalid time of day: {v}')
        return v


class LogMealInput(BaseModel):
    """Schema for logging an eaten meal."""
    reminder_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)
    energy_level: Optional[int] = Field(None, ge=MIN_ENERGY_LEVEL, le=MAX_ENERGY_LEVEL)


class TimelineSettingsInput(BaseModel):
    """Schema for eating timeline goals."""
    daily_meal_goal: int = Field(..., ge=0, le=20)
    daily_snack_goal: int = Field(..., ge=0, le=20)
    show_streak: bool = True
    show_missed_meals: bool = False
