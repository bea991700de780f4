"""Custom exception hierarchy for the calculation engine."""


class RuralCalcError(Exception):
    """Base exception for all engine errors."""


class InvalidInputError(RuralCalcError, ValueError):
    """Raised when a caller violates an input contract. Carries the offending field."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class UnknownModalityError(InvalidInputError):
    """Raised when a credit modality key has no entry in the legal table."""

    def __init__(self, modality: str):
        super().__init__("modality", f"unknown credit modality '{modality}'")
        self.modality = modality


class UnknownCreditLineError(InvalidInputError):
    """Raised when a credit line id is not registered."""

    def __init__(self, line_id: str):
        super().__init__("line_id", f"unknown credit line '{line_id}'")
        self.line_id = line_id


class LegalTableError(RuralCalcError):
    """Raised when the legal limit table is missing or malformed."""
