"""
The EB-1A criteria an evaluation request can target.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from app.exceptions import ConfigurationError


@dataclass(frozen=True)
class Criterion:
    criterion_id: str
    name: str
    description: str


_CRITERIA = [
    Criterion(
        "awards",
        "Awards",
        "Documentation of receipt of lesser nationally or internationally recognized "
        "prizes or awards for excellence",
    ),
    Criterion(
        "membership",
        "Membership",
        "Documentation of membership in associations that require outstanding "
        "achievements of their members",
    ),
    Criterion(
        "press",
        "Press",
        "Published material about you in professional or major trade publications "
        "or other major media",
    ),
    Criterion(
        "judging",
        "Judging",
        "Evidence of participation as a judge of the work of others in your field",
    ),
    Criterion(
        "original_contribution",
        "Original Contributions",
        "Evidence of original scientific, scholarly, artistic, athletic, or "
        "business-related contributions of major significance",
    ),
    Criterion(
        "scholarly_articles",
        "Scholarly Articles",
        "Evidence of authorship of scholarly articles in professional journals or "
        "other major media",
    ),
    Criterion(
        "exhibitions",
        "Exhibitions",
        "Evidence of display of your work at artistic exhibitions or showcases",
    ),
    Criterion(
        "leading_role",
        "Leading Role",
        "Evidence of performing a leading or critical role in distinguished organizations",
    ),
    Criterion(
        "high_salary",
        "High Salary",
        "Evidence of commanding a high salary or remuneration relative to others in the field",
    ),
    Criterion(
        "commercial_success",
        "Commercial Success",
        "Evidence of commercial successes in the performing arts",
    ),
]

CRITERIA: Dict[str, Criterion] = {c.criterion_id: c for c in _CRITERIA}


def get_criterion(criterion_id: str) -> Criterion:
    try:
        return CRITERIA[criterion_id]
    except KeyError:
        raise ConfigurationError(f"Unknown criterion: {criterion_id}") from None
