"""
Step-specific output schemas for the three-step analysis workflow.

LLM responses are loosely shaped JSON. Each step's payload is validated into
one member of a union tagged by ``step`` before it is persisted, so a stored
record always carries a well-formed output.
"""

import json
import re
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import CollaboratorError
from database.models import StrategyChoice

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class _OutputModel(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)


# ============ Step 1 ============


class KeyInsight(_OutputModel):
    """Headline finding of the free analysis."""

    summary: str
    bottleneck_stage: str
    conversion_issue: str
    quick_suggestion: str
    potential_impact: str


class TeaserAnalysis(_OutputModel):
    """Short preview of the paid analysis."""

    core_problem: str
    quick_advice: str
    expected_roi: str


class KeyInsightsOutput(_OutputModel):
    step: Literal[1] = 1
    key_insight: KeyInsight
    teaser_analysis: TeaserAnalysis


# ============ Step 2 ============


class StrategyOption(_OutputModel):
    """One of the two strategies offered after step 1."""

    title: str
    tag: str
    features: str
    core_actions: str
    investment: str


class StrategyOptionsOutput(_OutputModel):
    step: Literal[2] = 2
    stable_strategy: StrategyOption
    aggressive_strategy: StrategyOption

    def option(self, choice: StrategyChoice) -> StrategyOption:
        if choice is StrategyChoice.STABLE:
            return self.stable_strategy
        return self.aggressive_strategy


# ============ Step 3 ============


class CompleteReportOutput(_OutputModel):
    """Full report for the strategy the user picked."""

    step: Literal[3] = 3
    strategy: StrategyChoice
    company_info: dict[str, Any] = Field(default_factory=dict)
    funnel_data: dict[str, Any] = Field(default_factory=dict)
    key_insights: KeyInsightsOutput
    selected_strategy: StrategyOption
    detailed_analysis: dict[str, Any]
    recommendations: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)


AnalysisOutput = Annotated[
    KeyInsightsOutput | StrategyOptionsOutput | CompleteReportOutput,
    Field(discriminator="step"),
]

output_adapter: TypeAdapter[AnalysisOutput] = TypeAdapter(AnalysisOutput)


# ============ Parsing ============


def extract_json_object(text: str) -> dict[str, Any]:
    """
    Pull the outermost JSON object out of an LLM response.

    Raises:
        CollaboratorError: If no JSON object can be decoded
    """
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise CollaboratorError(
            message="AI response did not contain a JSON object",
            error_code="analysis_output_invalid",
        )
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise CollaboratorError(
            message=f"AI response is not valid JSON: {e.msg}",
            error_code="analysis_output_invalid",
        ) from e
    if not isinstance(data, dict):
        raise CollaboratorError(
            message="AI response JSON is not an object",
            error_code="analysis_output_invalid",
        )
    return data


def validate_output(data: dict[str, Any]) -> AnalysisOutput:
    """Validate a payload against the step union."""
    try:
        return output_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise CollaboratorError(
            message="AI response does not match the expected structure",
            error_code="analysis_output_invalid",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def parse_key_insights(text: str) -> KeyInsightsOutput:
    return validate_output({**extract_json_object(text), "step": 1})


def parse_strategy_options(text: str) -> StrategyOptionsOutput:
    return validate_output({**extract_json_object(text), "step": 2})


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, str | int | float) and str(item).strip()]


def build_complete_report(
    text: str,
    strategy: StrategyChoice,
    step_input: dict[str, Any],
) -> CompleteReportOutput:
    """
    Assemble the step-3 report from the LLM's detailed analysis and the
    context carried over from the earlier steps.
    """
    detailed = extract_json_object(text)

    strategies = _dig(detailed, "executive_summary", "growth_opportunity", "strategies")
    actions = _dig(detailed, "personalized_recommendations", "execution_plan", "phase_1", "actions")
    options = step_input.get("step2_output", {})

    return validate_output(
        {
            "step": 3,
            "strategy": strategy.value,
            "company_info": step_input.get("company_profile", {}),
            "funnel_data": step_input.get("funnel_data", {}),
            "key_insights": {**step_input.get("step1_output", {}), "step": 1},
            "selected_strategy": options.get(f"{strategy.value}_strategy"),
            "detailed_analysis": detailed,
            "recommendations": _string_list(strategies)[:5],
            "next_steps": _string_list(actions)[:5],
        }
    )
