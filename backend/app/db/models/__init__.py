"""ORM models exposed for metadata discovery."""
from app.db.models.agent_action_log import AgentActionLog
from app.db.models.plan import Plan
from app.db.models.reminder_delivery import ReminderDelivery
from app.db.models.task import PlanTask
from app.db.models.user import User

__all__ = [
    "AgentActionLog",
    "Plan",
    "PlanTask",
    "ReminderDelivery",
    "User",
]
