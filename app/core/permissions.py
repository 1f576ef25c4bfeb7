from enum import Enum


class PermissionCode(str, Enum):
    # Settlement desk
    APPROVE_CASH_TRANSFERS = "approve_cash_transfers"
    EXERCISE_ORDER_VIEW_ALL = "exercise_order.view_all"

    # Vesting
    VESTING_VIEW = "vesting.view"
    VESTING_REFRESH = "vesting.refresh"

    # Ledger administration (seeding companies, employees, plans and grants)
    LEDGER_ADMIN = "ledger.admin"


class ActorRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    COMPANY_ADMIN = "company_admin"
    FINANCE_ADMIN = "finance_admin"
    HR_ADMIN = "hr_admin"
    OPERATIONS_ADMIN = "operations_admin"
    EMPLOYEE = "employee"
