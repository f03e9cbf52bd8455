"""
Competency Catalog

The seven core competencies assessed on the CCIS scale, with their industry
weights and assessment task families. The catalog is an immutable table: it is
loaded once and handed to the components that need it.
"""
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Tuple
import re

from .exceptions import ValidationError


@dataclass(frozen=True)
class CompetencyDefinition:
    """A single competency in the catalog"""
    id: str
    name: str
    description: str
    industry_weight: float
    is_core_technical: bool
    is_core_soft: bool
    entry_level_criticality: str  # "critical", "important", "developing"
    assessment_tasks: Tuple[str, ...] = ()

    def is_critical_for_entry(self) -> bool:
        return self.entry_level_criticality == "critical"


class CompetencyCatalog:
    """
    Read-only lookup over competency definitions.

    Aliases let callers pass the loose identifiers the surrounding system uses
    ("collaboration", "tech_skills") without reintroducing string switches.
    """

    def __init__(
        self,
        competencies: List[CompetencyDefinition],
        aliases: Mapping[str, str],
    ):
        self._competencies: Mapping[str, CompetencyDefinition] = MappingProxyType(
            {c.id: c for c in competencies}
        )
        for alias, target in aliases.items():
            if target not in self._competencies:
                raise ValueError(f"Alias {alias!r} points to unknown competency {target!r}")
        self._aliases: Mapping[str, str] = MappingProxyType(dict(aliases))

    @staticmethod
    def _normalize(identifier: str) -> str:
        return re.sub(r"[^a-z]+", "_", identifier.strip().lower()).strip("_")

    def resolve_id(self, identifier: str) -> str:
        """Map an identifier or alias to its canonical competency id"""
        if not isinstance(identifier, str) or not identifier.strip():
            raise ValidationError("Competency identifier must be a non-empty string", "competencyId")

        key = self._normalize(identifier)
        if key in self._competencies:
            return key
        if key in self._aliases:
            return self._aliases[key]
        raise ValidationError(f"Invalid competency type: {identifier}", "competencyId")

    def get(self, identifier: str) -> CompetencyDefinition:
        return self._competencies[self.resolve_id(identifier)]

    def contains(self, identifier: str) -> bool:
        try:
            self.resolve_id(identifier)
        except ValidationError:
            return False
        return True

    def industry_weight(self, identifier: str) -> float:
        return self.get(identifier).industry_weight

    def core_soft_skills(self) -> List[CompetencyDefinition]:
        return [c for c in self if c.is_core_soft]

    def core_technical_skills(self) -> List[CompetencyDefinition]:
        return [c for c in self if c.is_core_technical]

    def entry_level_critical(self) -> List[CompetencyDefinition]:
        return [c for c in self if c.is_critical_for_entry()]

    @property
    def ids(self) -> List[str]:
        return list(self._competencies.keys())

    def __iter__(self) -> Iterator[CompetencyDefinition]:
        return iter(self._competencies.values())

    def __len__(self) -> int:
        return len(self._competencies)


DEFAULT_COMPETENCIES: Tuple[CompetencyDefinition, ...] = (
    CompetencyDefinition(
        id="communication",
        name="Communication",
        description="Written, verbal, and presentation skills for effective workplace interaction",
        industry_weight=0.20,
        is_core_technical=False,
        is_core_soft=True,
        entry_level_criticality="critical",
        assessment_tasks=(
            "email_writing",
            "presentation_creation",
            "client_communication",
            "documentation_writing",
            "meeting_facilitation",
        ),
    ),
    CompetencyDefinition(
        id="problem_solving",
        name="Problem Solving",
        description="Analytical thinking, debugging, and systematic solution development",
        industry_weight=0.18,
        is_core_technical=True,
        is_core_soft=False,
        entry_level_criticality="critical",
        assessment_tasks=(
            "debugging_scenarios",
            "algorithm_design",
            "system_troubleshooting",
            "requirement_analysis",
            "solution_architecture",
        ),
    ),
    CompetencyDefinition(
        id="teamwork",
        name="Teamwork",
        description="Collaboration, interpersonal skills, and team contribution",
        industry_weight=0.16,
        is_core_technical=False,
        is_core_soft=True,
        entry_level_criticality="critical",
        assessment_tasks=(
            "code_review_participation",
            "collaborative_projects",
            "conflict_resolution",
            "knowledge_sharing",
            "peer_feedback",
        ),
    ),
    CompetencyDefinition(
        id="adaptability",
        name="Adaptability",
        description="Learning agility, change management, and resilience",
        industry_weight=0.15,
        is_core_technical=False,
        is_core_soft=True,
        entry_level_criticality="important",
        assessment_tasks=(
            "technology_adoption",
            "process_changes",
            "learning_new_tools",
            "requirement_pivots",
            "environment_switches",
        ),
    ),
    CompetencyDefinition(
        id="time_management",
        name="Time Management",
        description="Planning, prioritization, deadline management, and efficiency",
        industry_weight=0.12,
        is_core_technical=False,
        is_core_soft=True,
        entry_level_criticality="important",
        assessment_tasks=(
            "project_planning",
            "deadline_prioritization",
            "multitasking_scenarios",
            "estimation_accuracy",
            "workflow_optimization",
        ),
    ),
    CompetencyDefinition(
        id="technical_skills",
        name="Technical Skills",
        description="Domain expertise, tool proficiency, and technical execution",
        industry_weight=0.14,
        is_core_technical=True,
        is_core_soft=False,
        entry_level_criticality="critical",
        assessment_tasks=(
            "coding_challenges",
            "system_design",
            "tool_proficiency",
            "best_practices",
            "code_quality",
        ),
    ),
    CompetencyDefinition(
        id="leadership",
        name="Leadership",
        description="Initiative, mentoring, decision-making, and influence",
        industry_weight=0.05,
        is_core_technical=False,
        is_core_soft=True,
        entry_level_criticality="developing",
        assessment_tasks=(
            "initiative_taking",
            "decision_making",
            "mentoring_scenarios",
            "project_ownership",
            "influence_exercise",
        ),
    ),
)

DEFAULT_ALIASES: Dict[str, str] = {
    "communication_skills": "communication",
    "problemsolving": "problem_solving",
    "analytical_thinking": "problem_solving",
    "collaboration": "teamwork",
    "team_work": "teamwork",
    "learning_agility": "adaptability",
    "flexibility": "adaptability",
    "timemanagement": "time_management",
    "time_planning": "time_management",
    "technical": "technical_skills",
    "tech_skills": "technical_skills",
    "leading": "leadership",
    "initiative": "leadership",
}


@lru_cache(maxsize=1)
def load_default_catalog() -> CompetencyCatalog:
    """Build the default catalog once per process"""
    return CompetencyCatalog(list(DEFAULT_COMPETENCIES), DEFAULT_ALIASES)
