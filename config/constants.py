from enum import Enum


class PlanType(str, Enum):
    SINGLE = "single"
    MULTI_INSTALLMENT = "multi_installment"

    @property
    def label(self) -> str:
        return {
            "single": "Single Payment",
            "multi_installment": "Multi EMI",
        }[self.value]


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"

    @property
    def step_days(self) -> int:
        """Fixed day step; monthly steps are calendar months instead"""
        return {
            "daily": 1,
            "weekly": 7,
            "biweekly": 14,
            "monthly": 0,
        }[self.value]


class FeeMethod(str, Enum):
    DEDUCT_FROM_DISBURSAL = "deduct_from_disbursal"
    ADD_TO_TOTAL = "add_to_total"

    @property
    def label(self) -> str:
        return {
            "deduct_from_disbursal": "Deducted from disbursal",
            "add_to_total": "Added to total repayable",
        }[self.value]


class FeeMethodSource(str, Enum):
    DECLARED = "declared"
    NAME_CONVENTION = "name_convention"
    DEFAULT = "default"


class FeeType(str, Enum):
    PERCENTAGE = "percentage"  # % of overdue principal per day
    FIXED = "fixed"  # flat one-time amount


class LoanStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    ACTIVE = "active"
    CLEARED = "cleared"


class ExtensionStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CalculationMethod(str, Enum):
    FIXED = "fixed"
    SALARY_DATE = "salary_date"
    SNAPSHOT = "snapshot"


class FeeSource(str, Enum):
    """Where a resolved fee amount came from, in resolution order"""
    FROZEN = "frozen"
    BREAKDOWN = "breakdown"
    PLAN = "plan"
    DEFAULT = "default"


class WarningCode(str, Enum):
    INVALID_SALARY_DAY = "invalid_salary_day"
    SALARY_DATE_UNSUPPORTED_FREQUENCY = "salary_date_unsupported_frequency"
    AMBIGUOUS_FEE_METHOD = "ambiguous_fee_method"
    DUE_DATE_SNAPSHOT_MISMATCH = "due_date_snapshot_mismatch"
    FROZEN_VALUE_MISMATCH = "frozen_value_mismatch"


# Name fragment identifying the post service fee, always added to total
POST_SERVICE_FEE_MARKER = "post service"

# Accepted plan_type spellings in stored plan snapshots
PLAN_TYPE_ALIASES = {
    "single": PlanType.SINGLE,
    "multi_emi": PlanType.MULTI_INSTALLMENT,
    "multi_installment": PlanType.MULTI_INSTALLMENT,
}

# Column definitions
SCHEDULE_COLUMNS = [
    "installment_no", "due_date", "period_start", "days",
    "outstanding_principal", "principal", "interest",
    "fee", "gst", "total",
]

FEE_COLUMNS = [
    "name", "percent", "method", "method_source",
    "amount", "gst", "multiplier", "total_amount", "total_gst",
]

SUMMARY_COLUMNS = ["item", "value"]

SHEET_SUMMARY = "Summary"
SHEET_SCHEDULE = "Schedule"
SHEET_FEES = "Fees"
SHEET_WARNINGS = "Warnings"
