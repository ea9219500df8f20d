"""
Domain errors raised by the validation engine and the services around it.

Ineligibility is never an error: the evaluator returns it as data. These
exceptions cover faults the caller has to fix (bad rule data, cycles,
missing records, illegal workflow moves).
"""


class AcademiaError(Exception):
    status_code = 400
    kind = "academia_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.kind}


class RuleConfigurationError(AcademiaError):
    status_code = 422
    kind = "rule_configuration_invalid"

    def __init__(self, message: str, problems: list[str] | None = None):
        super().__init__(message)
        self.problems = problems or [message]

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["problems"] = self.problems
        return data


class CircularDependencyError(AcademiaError):
    status_code = 409
    kind = "circular_dependency"

    def __init__(self, message: str, circular_path: list[int] | None = None):
        super().__init__(message)
        self.circular_path = circular_path or []

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["circular_path"] = self.circular_path
        return data


class RecordNotFoundError(AcademiaError):
    status_code = 404
    kind = "not_found"


class WorkflowError(AcademiaError):
    status_code = 409
    kind = "invalid_transition"


class ReviewerNotAuthorizedError(AcademiaError):
    status_code = 403
    kind = "reviewer_not_authorized"
