from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class EnrollmentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"


# Statuses that count as an "open" enrollment for the one-per-student rule.
OPEN_ENROLLMENT_STATUSES = (EnrollmentStatus.PENDING.value, EnrollmentStatus.ACTIVE.value)


class ReviewStatus(str, Enum):
    """Shared by documents and student requests."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class DocumentAppliesTo(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    BOTH = "both"


class EvaluationKind(str, Enum):
    NUMERIC = "numeric"
    CONCEPTUAL = "conceptual"


class GradeConcept(str, Enum):
    SATISFACTORY = "satisfactory"
    UNSATISFACTORY = "unsatisfactory"
