from .progression_service import (
    ProgressionService,
    IdentityResolver,
    AssessmentRepository,
    CatalogIdentityResolver,
    InMemoryAssessmentRepository,
    SubmissionResult,
    progression_service,
    get_progression_service,
)

__all__ = [
    "ProgressionService",
    "IdentityResolver",
    "AssessmentRepository",
    "CatalogIdentityResolver",
    "InMemoryAssessmentRepository",
    "SubmissionResult",
    "progression_service",
    "get_progression_service",
]
