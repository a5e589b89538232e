from decimal import Decimal

# GST applied to every fee and penalty (18%)
GST_RATE = Decimal("0.18")

# Extension fee as a share of principal (21%)
EXTENSION_FEE_RATE = Decimal("0.21")

# Extensions
MAX_EXTENSIONS = 4
EXTENSION_WINDOW_BEFORE = 5  # days before due date
EXTENSION_WINDOW_AFTER = 15  # days after due date
FIXED_EXTENSION_DAYS = 15

# Plan defaults
DEFAULT_REPAYMENT_DAYS = 15
DEFAULT_DAILY_RATE = Decimal("0.001")

# APR annualisation basis: 365 days x 100 (percent)
APR_DAYS_BASIS = Decimal("36500")

# Default late fee tiers (day 1 one-off 4%, 0.2% per day afterwards)
DEFAULT_PENALTY_TIERS = [
    {"tier_name": "Day 1 late fee", "days_overdue_start": 1, "days_overdue_end": 1,
     "fee_type": "percentage", "fee_value": "4", "tier_order": 1},
    {"tier_name": "Daily penalty", "days_overdue_start": 2, "days_overdue_end": None,
     "fee_type": "percentage", "fee_value": "0.2", "tier_order": 2},
]

# Amount precision
AMOUNT_PRECISION = 2
RATE_PRECISION = 4

# Logging
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
