"""RFC 9457 Problem Details raised at the HTTP boundary.

Domain errors (decode/assembly) live in sleeptracker.domain.errors; the
router translates the ones a caller must see into these, and the handlers
in shared.middleware render them as application/problem+json.
"""

from typing import Any

PROBLEM_BASE_URI = "https://sleeptracker.dev/problems"


class ProblemDetailError(Exception):
    status = 500
    title = "Internal Error"
    slug = "internal-error"

    def __init__(self, detail: str, violations: list[dict[str, Any]] | None = None):
        self.detail = detail
        self.violations = violations
        super().__init__(detail)

    @property
    def type_uri(self) -> str:
        return f"{PROBLEM_BASE_URI}/{self.slug}"

    def to_problem(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status,
            "detail": self.detail,
        }
        if self.violations:
            body["violations"] = self.violations
        return body


class InvalidDateRangeError(ProblemDetailError):
    status = 400
    title = "Invalid Date Range"
    slug = "invalid-date-range"

    def __init__(self, start: str, end: str):
        super().__init__(f"Parameter 'start' ({start}) must be before 'end' ({end})")


class UnsupportedSourceError(ProblemDetailError):
    status = 422
    title = "Unsupported Source"
    slug = "unsupported-source"

    def __init__(self, source: str, allowed: list[str]):
        super().__init__(f"Source '{source}' is not supported. Must be one of: {', '.join(allowed)}")


class AssemblyProblemError(ProblemDetailError):
    """This night's data is inconsistent; resubmitting the same input cannot succeed."""

    status = 422
    title = "Inconsistent Sleep Session"
    slug = "inconsistent-session"

    def __init__(self, reason: str, detail: str):
        super().__init__(
            detail,
            violations=[{"field": "phases", "message": detail, "constraint": reason}],
        )
