"""Database-level enumerations for screening sessions."""

import enum


class SessionStatus(str, enum.Enum):
    """Lifecycle states for a screening session.

    Transitions:
        created -> in_progress   (first answer recorded)
        in_progress -> completed (answers submitted, evaluation written)
    """

    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SessionPath(str, enum.Enum):
    """How the answers were collected.

    A session starts on the manual path and switches to ``ehr_assisted``
    the first time a fast-path value is accepted.
    """

    MANUAL = "manual"
    EHR_ASSISTED = "ehr_assisted"
