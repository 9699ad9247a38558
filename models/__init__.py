from .condition_model import Condition
from .health_log_model import HealthLog
from .medication_model import ConditionRef, ConditionWithMedications, Medication
from .user_model import User

__all__ = [
    "Condition",
    "ConditionRef",
    "ConditionWithMedications",
    "HealthLog",
    "Medication",
    "User",
]
