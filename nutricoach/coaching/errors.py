"""Error types for the coaching engine.

Only programming/config errors are raised. Expected outcomes such as a
skipped member, a rate-limited request or an exhausted quota are returned
as values.
"""


class CoachingError(Exception):
    """Base class for coaching engine errors."""


class UnknownCategoryError(CoachingError):
    """Raised when a batch pass is requested for a category that does not exist."""

    def __init__(self, category: str, message: str | None = None):
        self.category = category
        self.message = message or f"Unknown notification category: {category!r}"
        super().__init__(self.message)


class MemberNotFoundError(CoachingError):
    """Raised when an operation targets a member id that does not exist."""

    def __init__(self, member_id: str, message: str | None = None):
        self.member_id = member_id
        self.message = message or f"Member not found: {member_id}"
        super().__init__(self.message)


class MemberTypeNotFoundError(CoachingError):
    """Raised when updating a member type that does not exist."""

    def __init__(self, member_type_id: str, message: str | None = None):
        self.member_type_id = member_type_id
        self.message = message or f"Member type not found: {member_type_id}"
        super().__init__(self.message)
