class PlannerError(Exception):
    """Base exception for Production Planner errors.

    Carries an optional machine-readable code and a details payload, e.g. the
    field errors of a rejected sale record.
    """

    default_message = "Production planning failed"

    def __init__(self, message=None, code=None, details=None):
        self.message = message or self.default_message
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class DatabaseError(PlannerError):
    """Forecast storage failed."""
    default_message = "Database error"


class ValidationError(PlannerError):
    """A sale record is malformed."""
    default_message = "Invalid sale record"


class ForecastError(PlannerError):
    """A forecast request has an invalid service level or lot size."""
    default_message = "Invalid forecast request"


class PatternMiningError(PlannerError):
    default_message = "Pattern mining failed"


class CalculationError(PlannerError):
    default_message = "Calculation error"
