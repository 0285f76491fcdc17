"""
Matching Errors

Input-validation and lookup failures raised at the transformer and
service boundaries. Cache backend errors never surface as these.
"""


class MatchingError(Exception):
    """Base class for matching engine errors."""


class ConfigurationError(MatchingError):
    """Weight table or feature flag configuration is invalid."""


class ProfileIncompleteError(MatchingError):
    """Student profile is missing or too incomplete to match."""

    def __init__(self, message: str = "Student profile is incomplete. Please complete onboarding first."):
        super().__init__(message)


class StudentNotFoundError(MatchingError):
    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(f"Student profile not found: {student_id}")


class ProgramNotFoundError(MatchingError):
    def __init__(self, program_id: str):
        self.program_id = program_id
        super().__init__(f"Program not found: {program_id}")


class InvalidProgramError(MatchingError):
    """Program record is malformed and cannot be scored."""
