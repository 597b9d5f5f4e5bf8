"""Closed value sets for status / stage / type columns.

Columns store the member's string value. Stored data is read back through
``parse()``, which returns None for values outside the set instead of
raising, so aggregations can account for unknown stages explicitly.
"""

import enum


class _ClosedEnum(str, enum.Enum):

    @classmethod
    def parse(cls, value):
        """Return the member for ``value`` (member or raw string), else None."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None

    @classmethod
    def values(cls):
        return [m.value for m in cls]

    def __str__(self):
        return self.value


class Role(_ClosedEnum):
    ADMIN = "ADMIN"
    USER = "USER"


class DealStage(_ClosedEnum):
    LEAD = "LEAD"
    QUALIFIED = "QUALIFIED"
    MEETING_SCHEDULED = "MEETING_SCHEDULED"
    PROPOSAL_SENT = "PROPOSAL_SENT"
    NEGOTIATION = "NEGOTIATION"
    CLOSED_WON = "CLOSED_WON"
    CLOSED_LOST = "CLOSED_LOST"

    @property
    def is_closed(self):
        return self in CLOSED_DEAL_STAGES


class DealershipStatus(_ClosedEnum):
    PROSPECT = "PROSPECT"
    QUALIFIED = "QUALIFIED"
    MEETING_SCHEDULED = "MEETING_SCHEDULED"
    PROPOSAL_SENT = "PROPOSAL_SENT"
    NEGOTIATION = "NEGOTIATION"
    ACTIVE_CUSTOMER = "ACTIVE_CUSTOMER"
    CHURNED = "CHURNED"


class ProspectStatus(_ClosedEnum):
    COLD = "COLD"
    CONTACTED = "CONTACTED"
    INTERESTED = "INTERESTED"
    APPOINTMENT_SET = "APPOINTMENT_SET"
    PROPOSAL_SENT = "PROPOSAL_SENT"
    CLOSED_WON = "CLOSED_WON"
    CLOSED_LOST = "CLOSED_LOST"
    UNRESPONSIVE = "UNRESPONSIVE"


class InteractionType(_ClosedEnum):
    EMAIL = "EMAIL"
    CALL = "CALL"
    LINKEDIN_MESSAGE = "LINKEDIN_MESSAGE"
    LINKEDIN_CONNECTION = "LINKEDIN_CONNECTION"
    MEETING = "MEETING"
    NOTE = "NOTE"


class ActivityType(_ClosedEnum):
    CALL = "CALL"
    EMAIL = "EMAIL"
    MEETING = "MEETING"
    NOTE = "NOTE"
    STATUS_CHANGE = "STATUS_CHANGE"
    TASK_COMPLETED = "TASK_COMPLETED"
    LINKEDIN_MESSAGE = "LINKEDIN_MESSAGE"
    OTHER = "OTHER"


class TaskStatus(_ClosedEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Board order for the deal pipeline (open stages only).
OPEN_DEAL_STAGES = (
    DealStage.LEAD,
    DealStage.QUALIFIED,
    DealStage.MEETING_SCHEDULED,
    DealStage.PROPOSAL_SENT,
    DealStage.NEGOTIATION,
)
CLOSED_DEAL_STAGES = (DealStage.CLOSED_WON, DealStage.CLOSED_LOST)

# Board order for the dealership pipeline; the status board adds the
# customer statuses at the end.
DEALERSHIP_PIPELINE_STAGES = (
    DealershipStatus.PROSPECT,
    DealershipStatus.QUALIFIED,
    DealershipStatus.MEETING_SCHEDULED,
    DealershipStatus.PROPOSAL_SENT,
    DealershipStatus.NEGOTIATION,
)
DEALERSHIP_BOARD_STAGES = DEALERSHIP_PIPELINE_STAGES + (
    DealershipStatus.ACTIVE_CUSTOMER,
    DealershipStatus.CHURNED,
)

OPEN_TASK_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)
