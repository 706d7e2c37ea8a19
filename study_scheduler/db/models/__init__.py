"""ORM models exposed for metadata discovery."""
from study_scheduler.db.models.assignment import Assignment
from study_scheduler.db.models.availability_block import AvailabilityBlock
from study_scheduler.db.models.course import Course
from study_scheduler.db.models.planned_task import PlannedTask
from study_scheduler.db.models.schedule_action_log import ScheduleActionLog
from study_scheduler.db.models.schedule_suggestion import ScheduleSuggestion
from study_scheduler.db.models.user import User

__all__ = [
    "Assignment",
    "AvailabilityBlock",
    "Course",
    "PlannedTask",
    "ScheduleActionLog",
    "ScheduleSuggestion",
    "User",
]
