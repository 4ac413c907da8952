# academic/errors.py


class AcademicRuleError(Exception):
    """Base error for requests the rules engine refuses to process.

    Carries an HTTP-style status code so the router can hand it straight
    to ``HTTPException``.
    """

    status_code = 500

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class PreconditionError(AcademicRuleError):
    status_code = 400


class AuthorizationError(AcademicRuleError):
    status_code = 403


class NotFoundError(AcademicRuleError):
    status_code = 404


class StaleStudentStateError(AcademicRuleError):
    """A student row changed between the batch read and the batch commit."""

    status_code = 409

    def __init__(self, student_id: int):
        super().__init__(
            f"Student {student_id} was modified concurrently; batch rolled back. Re-run the batch."
        )
        self.student_id = student_id


class BatchCommitError(AcademicRuleError):
    status_code = 500
