from typing import Final

# Collections (one local table / one remote resource each)
COOKING_SESSIONS: Final[str] = "cooking_sessions"
COOKING_TIMERS: Final[str] = "cooking_timers"
STEP_COMPLETIONS: Final[str] = "step_completions"
RECIPE_BREAKDOWNS: Final[str] = "recipe_breakdowns"
MEAL_REMINDERS: Final[str] = "meal_reminders"
ENERGY_SNAPSHOTS: Final[str] = "energy_snapshots"
FAVORITE_MEALS: Final[str] = "favorite_meals"
MEAL_LOGS: Final[str] = "meal_logs"
TIMELINE_SETTINGS: Final[str] = "eating_timeline_settings"

# Cooking session statuses
SESSION_ACTIVE: Final[str] = "active"
SESSION_PAUSED: Final[str] = "paused"
SESSION_COMPLETED: Final[str] = "completed"
SESSION_ABANDONED: Final[str] = "abandoned"
SESSION_TERMINAL: Final[frozenset] = frozenset({SESSION_COMPLETED, SESSION_ABANDONED})

# Cooking timer statuses
TIMER_RUNNING: Final[str] = "running"
TIMER_PAUSED: Final[str] = "paused"
TIMER_COMPLETED: Final[str] = "completed"
TIMER_CANCELLED: Final[str] = "cancelled"
TIMER_TERMINAL: Final[frozenset] = frozenset({TIMER_COMPLETED, TIMER_CANCELLED})

# Reminder occurrence kinds
PRE_ALERT: Final[str] = "pre_alert"
MAIN: Final[str] = "main"

# 0 = Sunday .. 6 = Saturday
DAY_NAMES: Final[tuple] = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
ALL_DAYS: Final[tuple] = (0, 1, 2, 3, 4, 5, 6)

# Energy tracking
TIME_OF_DAY_BUCKETS: Final[tuple] = ("morning", "afternoon", "evening", "night")
MIN_ENERGY_LEVEL: Final[int] = 1
MAX_ENERGY_LEVEL: Final[int] = 5
DEFAULT_ENERGY_LEVEL: Final[int] = 3

# Eating timeline: logs tied to one of these reminders count as meals, the rest as snacks
MAIN_MEAL_NAMES: Final[frozenset] = frozenset({"breakfast", "lunch", "dinner"})
DEFAULT_DAILY_MEAL_GOAL: Final[int] = 3
DEFAULT_DAILY_SNACK_GOAL: Final[int] = 2
TIMELINE_SETTINGS_ID: Final[str] = "timeline-settings"

BREAKDOWN_SYSTEM_MESSAGE: Final[str] = (
    "You break recipes into small, concrete cooking steps for people who "
    "find long instructions overwhelming. Answer with JSON only."
)
BREAKDOWN_PROMPT_TEMPLATE: Final[str] = (
    """
    Break the following recipe into steps.
    Granularity level: {granularity} (1 = few broad steps, 5 = many tiny steps).
    Cook's current energy level: {energy} (1 = exhausted, 5 = energetic).

    Recipe:
    {recipe}

    Return JSON in the following format:
    """
)
BREAKDOWN_JSON_FORMAT: Final[str] = (
    """
{
    "steps": [
      {
        "text": str,
        "estimated_minutes": int
      },
      {
        "text": str,
        "estimated_minutes": int
      },
    ]
  }
    """
)
