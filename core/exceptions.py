"""Exceptions raised by the calculation engine."""


class EngineError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": {k: str(v) for k, v in self.details.items()},
        }


class InvalidPrincipalError(EngineError):
    """Raised when the principal is not a positive finite amount."""

    def __init__(self, principal):
        super().__init__(
            f"Invalid principal amount: {principal!r}",
            {"principal": principal},
        )


class InvalidSalaryDayError(EngineError):
    """Raised when a salary day falls outside 1-31."""

    def __init__(self, salary_day):
        super().__init__(
            f"Salary day must be between 1 and 31, got {salary_day!r}",
            {"salary_day": salary_day},
        )


class MissingAnchorDateError(EngineError):
    """Raised when no processed/disbursed date is available to count days from."""

    def __init__(self, loan_id=None):
        details = {}
        if loan_id is not None:
            details["loan_id"] = loan_id
        super().__init__("Loan has no processed or disbursed date", details)


class ExtensionLimitExceededError(EngineError):
    """Raised when the loan already used all allowed extensions."""

    def __init__(self, extension_count: int, max_extensions: int):
        super().__init__(
            f"Maximum {max_extensions} extensions already availed",
            {"extension_count": extension_count, "max_extensions": max_extensions},
        )


class ExtensionNotAllowedError(EngineError):
    """Raised when an extension cannot be requested right now."""
    pass


class ExtensionInvariantError(EngineError):
    """Raised when an extension would change the outstanding balance."""
    pass


class PlanDecodeError(EngineError):
    """Raised when a stored plan snapshot or loan row cannot be decoded."""
    pass


class InvalidPenaltyTiersError(EngineError):
    """Raised when a late fee tier table has gaps, overlaps or bad ranges."""
    pass


class AlreadyFrozenError(EngineError):
    """Raised when processed values would be written twice."""

    def __init__(self, loan_id=None):
        details = {}
        if loan_id is not None:
            details["loan_id"] = loan_id
        super().__init__("Loan values are already frozen", details)
