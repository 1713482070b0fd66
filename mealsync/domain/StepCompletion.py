"""StepCompletion: one completed (or skipped) step of a cooking session, keyed by (session, step)."""
from datetime import datetime
from typing import Optional

from mealsync.utilities.constants import STEP_COMPLETIONS
from mealsync.utilities.timestamps import to_iso, from_iso


class StepCompletion:
    collection = STEP_COMPLETIONS

    def __init__(self, session_id: str, step_index: int, completed_at: datetime,
                 step_text: Optional[str] = None, time_taken_seconds: Optional[int] = None,
                 skipped: bool = False, difficulty_rating: Optional[int] = None,
                 notes: Optional[str] = None, id: Optional[str] = None):
        self.id = id or StepCompletion.key(session_id, step_index)
        self.session_id = session_id
        self.step_index = step_index
        self.step_text = step_text
        self.completed_at = completed_at
        self.time_taken_seconds = time_taken_seconds
        self.skipped = skipped
        self.difficulty_rating = difficulty_rating
        self.notes = notes

    @staticmethod
    def key(session_id: str, step_index: int) -> str:
        # Deterministic id: completing the same step again replaces the record.
        return f"{session_id}:{step_index}"

    def __str__(self) -> str:
        flag = " (skipped)" if self.skipped else ""
        return f"Step {self.step_index} of {self.session_id}{flag}"

    __repr__ = __str__

    @staticmethod
    def from_dict(data):
        d = dict(data)
        return StepCompletion(
            id=d.get("id"),
            session_id=d["session_id"],
            step_index=int(d["step_index"]),
            completed_at=from_iso(d.get("completed_at")),
            step_text=d.get("step_text"),
            time_taken_seconds=d.get("time_taken_seconds"),
            skipped=bool(d.get("skipped", False)),
            difficulty_rating=d.get("difficulty_rating"),
            notes=d.get("notes"),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "step_index": self.step_index,
            "step_text": self.step_text,
            "completed_at": to_iso(self.completed_at),
            "time_taken_seconds": self.time_taken_seconds,
            "skipped": self.skipped,
            "difficulty_rating": self.difficulty_rating,
            "notes": self.notes,
        }
