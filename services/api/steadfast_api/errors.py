from __future__ import annotations

from datetime import date


class ProgressError(Exception):
    """Base class for failures raised by the progress engine."""


class InvalidMonthError(ProgressError, ValueError):
    def __init__(self, month: str) -> None:
        super().__init__(f"Invalid month format {month!r}. Expected YYYY-MM")
        self.month = month


class BackdatedCheckInError(ProgressError):
    def __init__(self, *, day: date, last_day: date) -> None:
        super().__init__(
            f"Check-in day {day.isoformat()} is before the last counted day "
            f"{last_day.isoformat()}"
        )
        self.day = day
        self.last_day = last_day


class ProgressConflictError(ProgressError):
    """Another request holds this user's progress row; safe to retry."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Progress for user {user_id!r} is being updated concurrently")
        self.user_id = user_id


class FeatureLockedError(ProgressError):
    def __init__(self, *, feature: str, threshold_days: int) -> None:
        super().__init__(
            "Feature locked. Requires a relapse-free check-in streak of "
            f"{threshold_days} days."
        )
        self.feature = feature
        self.threshold_days = threshold_days
