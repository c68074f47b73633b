"""
Prompt text sent to every scoring backend.

All backends receive the same system prompt and user prompt; only the
payload shape around them differs per backend family.
"""
from __future__ import annotations

from app.models.schemas import EvaluationRequest
from app.services.criteria import CRITERIA

SYSTEM_PROMPT = """You are an experienced USCIS immigration officer evaluating EB-1A (Extraordinary Ability) visa petitions.

Your role is to evaluate the evidence provided for a specific EB-1A criterion and provide:
1. A grade: "strong", "moderate", "weak", or "insufficient"
2. A score from 0-100
3. Detailed feedback explaining your assessment
4. 2-4 specific suggestions for improvement

Be realistic and thorough. Consider:
- Quality and prestige of the evidence
- Whether it demonstrates "extraordinary ability" at a national/international level
- Specific documentation that would strengthen the case
- How an actual immigration officer would view this evidence

Respond in JSON format only."""

ASSUME_EXHIBITS_NOTE = (
    "**IMPORTANT**: The applicant has indicated that all exhibits and supporting "
    "documents referenced in the evidence documentation exist and are available. "
    "Evaluate the evidence assuming these documents are properly attached to the petition."
)

EXHIBITS_ATTACHED_NOTE = (
    "**NOTE**: The above exhibits have been provided. Evaluate both the petition "
    "text and the exhibit content together."
)

NO_EXHIBITS_NOTE = (
    "**NOTE**: No exhibits have been attached. Evaluate only what is explicitly "
    "described in the evidence documentation. If exhibits or supporting documents "
    "are referenced but not provided, note this as a gap."
)

USER_PROMPT = """
## Criterion Being Evaluated
{title} (ID: {criterion_id})

## USCIS Policy Manual Guidance
{policy}

## Evidence Documentation
{evidence}{exhibits}

{note}

## Your Task
Evaluate this evidence for the above criterion. Apply the USCIS Policy Manual guidance in your assessment. Consider whether this evidence would convince a USCIS officer that the applicant has extraordinary ability at a national or international level.

Respond with a JSON object containing:
- "grade": one of "strong", "moderate", "weak", "insufficient"
- "score": number from 0-100
- "feedback": detailed paragraph explaining your assessment
- "suggestions": array of 2-4 specific improvement suggestions

JSON Response:"""


def build_user_prompt(request: EvaluationRequest) -> str:
    """Render the user prompt, including exhibit text unless exhibits are assumed."""
    exhibits = ""
    if request.assume_exhibits_exist:
        note = ASSUME_EXHIBITS_NOTE
    elif request.exhibits_text.strip():
        exhibits = (
            "\n\n## Attached Exhibits (Extracted Text)\n"
            "The following exhibits have been attached and their content extracted "
            f"for your review:\n\n{request.exhibits_text.strip()}"
        )
        note = EXHIBITS_ATTACHED_NOTE
    else:
        note = NO_EXHIBITS_NOTE

    title = request.criterion_title.strip()
    if not title and request.criterion_id in CRITERIA:
        criterion = CRITERIA[request.criterion_id]
        title = f"{criterion.name}: {criterion.description}"

    return USER_PROMPT.format(
        title=title or request.criterion_id,
        criterion_id=request.criterion_id,
        policy=request.policy_text.strip() or "No policy guidance provided.",
        evidence=request.evidence_text.strip(),
        exhibits=exhibits,
        note=note,
    )
