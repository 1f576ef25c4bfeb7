from app.models.audit_log import AuditLog
from app.models.cash_transfer import CashTransfer
from app.models.company import Company
from app.models.employee import Employee
from app.models.exercise_order import ExerciseOrder
from app.models.grant import Grant
from app.models.incentive_plan import IncentivePlan
from app.models.portfolio import Portfolio
from app.models.share_transfer import ShareTransfer
from app.models.vesting_event import VestingEvent

__all__ = [
    "AuditLog",
    "CashTransfer",
    "Company",
    "Employee",
    "ExerciseOrder",
    "Grant",
    "IncentivePlan",
    "Portfolio",
    "ShareTransfer",
    "VestingEvent",
]
