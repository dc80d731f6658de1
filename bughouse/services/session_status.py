import enum
from datetime import datetime

from bughouse.models.session import SessionStatus, TutoringSession


class DisplayStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


_EXPLICIT = {
    SessionStatus.CANCELLED: DisplayStatus.CANCELLED,
    SessionStatus.NO_SHOW: DisplayStatus.NO_SHOW,
    SessionStatus.COMPLETED: DisplayStatus.COMPLETED,
}


def classify(status: SessionStatus | None, start: datetime, end: datetime, now: datetime) -> DisplayStatus:
    """Explicit terminal values win; otherwise the status follows the clock."""
    if status is not None:
        return _EXPLICIT[status]
    if start <= now < end:
        return DisplayStatus.ONGOING
    if now < start:
        return DisplayStatus.UPCOMING
    return DisplayStatus.COMPLETED


def classify_session(session: TutoringSession, now: datetime) -> DisplayStatus:
    return classify(session.explicit_status, session.start_time, session.end_time, now)
