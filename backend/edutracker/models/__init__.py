from edutracker.models.student import Student
from edutracker.models.evaluation import Evaluation
from edutracker.models.reinforcement import ReinforcementGroup, Attendance, ReinforcementHistory
from edutracker.models.catalog import ClassRoom, Competency, TeacherInvite
from edutracker.models.sync_task import SyncTask, SyncState, SyncOp

# Record store collection name -> ORM model
MODELS_BY_COLLECTION = {
    "students": Student,
    "evaluations": Evaluation,
    "reinforcement_groups": ReinforcementGroup,
    "attendance": Attendance,
    "reinforcement_history": ReinforcementHistory,
    "classes": ClassRoom,
    "competencies": Competency,
    "invites": TeacherInvite,
}

__all__ = [
    "Student", "Evaluation", "ReinforcementGroup", "Attendance", "ReinforcementHistory",
    "ClassRoom", "Competency", "TeacherInvite", "SyncTask", "SyncState", "SyncOp",
    "MODELS_BY_COLLECTION",
]
