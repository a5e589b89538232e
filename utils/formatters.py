def fmt_amount(value, unit: str = "₹") -> str:
    """Format an amount: 1234567.891 -> ₹1,234,567.89"""
    value = float(value)
    sign = "-" if value < 0 else ""
    return f"{sign}{unit}{abs(value):,.2f}"


def fmt_rate(value) -> str:
    """Format a percentage figure: 36.5 -> 36.50%"""
    return f"{float(value):.2f}%"


def fmt_days(days: int) -> str:
    """Format a day count: 1 -> 1 day, 15 -> 15 days"""
    return f"{days} day" if days == 1 else f"{days} days"
