"""
Engine error taxonomy.

Validation failures are raised before any persistence attempt. Persistence
warnings come from the remote store and are logged by the sync worker; they
never undo an already-applied local write.
"""


class EngineError(Exception):
    """Base class for every error raised by the progress engine."""


class ValidationError(EngineError):
    """Input rejected at the boundary; nothing was persisted."""


class StaleReferenceError(ValidationError):
    """An attendance save named students who are not current group members."""

    def __init__(self, group_id: str, student_ids: list):
        self.group_id = group_id
        self.student_ids = list(student_ids)
        super().__init__(
            "Students {} are not members of group {}".format(", ".join(self.student_ids), group_id)
        )


class NotFoundError(EngineError):
    """A referenced record does not exist in the local cache."""

    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__("{} record '{}' not found".format(collection, record_id))


class DischargeIncompleteError(EngineError):
    """
    Discharge wrote the student and history entry but could not remove the
    student from the group roster. Retry the membership removal only.
    """

    def __init__(self, group_id: str, student_id: str, history_id: str):
        self.group_id = group_id
        self.student_id = student_id
        self.history_id = history_id
        super().__init__(
            "Student {} was discharged but is still a member of group {}".format(student_id, group_id)
        )


class PersistenceWarning(EngineError):
    """Remote store rejected a write or could not be reached."""

    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)
