"""
Prompt templates for the three-step funnel analysis.
"""

import json
from typing import Any

from database.models import StrategyChoice

# Sampling temperature per step
KEY_INSIGHTS_TEMPERATURE = 0.3
STRATEGY_OPTIONS_TEMPERATURE = 0.6
COMPLETE_REPORT_TEMPERATURE = 0.7

KEY_INSIGHTS_SYSTEM = (
    "You are a senior sales-funnel analyst. Find the single most important "
    "bottleneck in the data and explain it concisely. Reply with the requested "
    "JSON only, without any extra text."
)

STRATEGY_OPTIONS_SYSTEM = (
    "You are a business strategy consultant. Based on the analysis, propose two "
    "clearly contrasting optimization strategies. Reply with the requested JSON only."
)

COMPLETE_REPORT_SYSTEM = (
    "You are a business analyst writing a personalized full report that matches "
    "the client's chosen strategy, risk appetite and timeline. Reply with the "
    "requested JSON only."
)

_STRATEGY_PROFILE = {
    StrategyChoice.STABLE: {
        "label": "Stable optimization strategy",
        "risk": "low",
        "timeline": "gradual",
        "investment": "conservative",
        "approach": "traditional",
        "focus": (
            "Risk control, incremental improvement and existing resources. "
            "Phased, verifiable steps over a 2-3 month horizon, favoring low-cost "
            "high-impact measures."
        ),
        "durations": ("4-6 weeks", "6-10 weeks", "10-12 weeks"),
        "payback": "6-12 months",
    },
    StrategyChoice.AGGRESSIVE: {
        "label": "Aggressive growth strategy",
        "risk": "high",
        "timeline": "fast",
        "investment": "aggressive",
        "approach": "tech_driven",
        "focus": (
            "Fast growth through new tooling and automation. Rapid iteration "
            "targeting visible results within a month, favoring high-investment "
            "high-return opportunities."
        ),
        "durations": ("1-2 weeks", "2-3 weeks", "3-4 weeks"),
        "payback": "2-6 months",
    },
}


def stage_conversion_rates(stages: list[dict[str, Any]]) -> list[float | None]:
    """Conversion rate (percent) from each stage to the next; None for the last stage."""
    rates: list[float | None] = []
    for index, stage in enumerate(stages):
        if index == len(stages) - 1:
            rates.append(None)
            continue
        current = stage.get("current_value") or 0
        following = stages[index + 1].get("current_value") or 0
        rates.append(round(following / current * 100, 1) if current > 0 else 0.0)
    return rates


def _company_block(company: dict[str, Any], with_description: bool = True) -> str:
    lines = [
        f"- Company name: {company.get('company_name') or 'n/a'}",
        f"- Industry: {company.get('industry') or 'n/a'}",
        f"- City: {company.get('city') or 'n/a'}",
        f"- Team size: {company.get('team_size') or 'n/a'}",
        f"- Sales model: {company.get('sales_model') or 'n/a'}",
    ]
    if with_description:
        lines.append(f"- Description: {company.get('company_description') or 'none'}")
    return "\n".join(lines)


def _stage_block(stages: list[dict[str, Any]]) -> str:
    lines = []
    rates = stage_conversion_rates(stages)
    for index, (stage, rate) in enumerate(zip(stages, rates), start=1):
        lines.append(f"  {index}. {stage.get('stage_name')}:")
        lines.append(f"     - Current: {stage.get('current_value', 0)}")
        if stage.get("previous_value") is not None:
            lines.append(f"     - Previous period: {stage['previous_value']}")
        if rate is not None:
            lines.append(f"     - Conversion to next stage: {rate}%")
    return "\n".join(lines) if lines else "  (no stages)"


def build_key_insights_prompt(context: dict[str, Any]) -> str:
    company = _company_block(context.get("company_profile", {}))
    funnel = context.get("funnel_data", {})
    return f"""# Sales funnel key insights

## Task
Produce a short, high-value insight from the funnel data below. This is the free
preview; it should deliver real value and motivate a deeper analysis.

## Company
{company}

## Funnel
- Name: {funnel.get('funnel_name')}
- Period: {funnel.get('time_period')}
- Stages:
{_stage_block(funnel.get('stages', []))}

## Guidelines
1. Treat the stage with the lowest conversion rate as the main bottleneck and
   compare with the previous period where available.
2. Suggestions must be specific and actionable, and target the highest-impact fix.
3. Estimate the upside from improving the bottleneck toward industry norms.

## Output
Reply with exactly this JSON structure:

{{
  "key_insight": {{
    "summary": "the most important problem or opportunity (max 25 words)",
    "bottleneck_stage": "name of the weakest stage",
    "conversion_issue": "the concrete conversion problem (max 15 words)",
    "quick_suggestion": "one or two improvement directions (max 15 words)",
    "potential_impact": "expected gain after improvement (max 20 words)"
  }},
  "teaser_analysis": {{
    "core_problem": "data-backed severity of the core problem (max 30 words)",
    "quick_advice": "a concrete actionable recommendation (max 30 words)",
    "expected_roi": "quantified return expectation (max 20 words)"
  }}
}}"""


def build_strategy_options_prompt(context: dict[str, Any]) -> str:
    company = _company_block(context.get("company_profile", {}), with_description=False)
    insight = context.get("step1_output", {}).get("key_insight", {})
    funnel = context.get("funnel_data", {})
    return f"""# Strategy options

## Company
{company}

## Funnel
- Name: {funnel.get('funnel_name')}
- Stages:
{_stage_block(funnel.get('stages', []))}

## Key insight from the first analysis
- Summary: {insight.get('summary')}
- Bottleneck: {insight.get('bottleneck_stage')}
- Conversion issue: {insight.get('conversion_issue')}

## Task
Propose two contrasting strategies for the bottleneck: a low-risk stable one and
a high-return aggressive one.

## Output
Reply with exactly this JSON structure:

{{
  "stable_strategy": {{
    "title": "Stable optimization",
    "tag": "Low risk",
    "features": "incremental improvement, results in 2-3 months",
    "core_actions": "A/B testing, team training, process optimization",
    "investment": "relatively low, controlled risk"
  }},
  "aggressive_strategy": {{
    "title": "Aggressive growth",
    "tag": "High return",
    "features": "technology-driven, results within a month",
    "core_actions": "AI tooling, automation, data-driven targeting",
    "investment": "higher, with larger ROI"
  }}
}}"""


def build_complete_report_prompt(context: dict[str, Any], strategy: StrategyChoice) -> str:
    company = _company_block(context.get("company_profile", {}), with_description=False)
    profile = _STRATEGY_PROFILE[strategy]
    funnel = context.get("funnel_data", {})
    insight = context.get("step1_output", {}).get("key_insight", {})
    option = context.get("step2_output", {}).get(f"{strategy.value}_strategy", {})
    phase_one, phase_two, phase_three = profile["durations"]

    return f"""# Personalized complete analysis report

## Company
{company}

## Funnel
- Name: {funnel.get('funnel_name')}
- Period: {funnel.get('time_period')}
- Stages: {json.dumps(funnel.get('stages', []), ensure_ascii=False)}

## Key insight
- Summary: {insight.get('summary')}
- Bottleneck: {insight.get('bottleneck_stage')}
- Conversion issue: {insight.get('conversion_issue')}

## Chosen strategy
- Strategy: {profile['label']}
- Features: {option.get('features')}
- Core actions: {option.get('core_actions')}
- Investment: {option.get('investment')}
- Risk preference: {profile['risk']}
- Timeline preference: {profile['timeline']}
- Investment preference: {profile['investment']}
- Approach preference: {profile['approach']}

## Focus
{profile['focus']}

## Output
Reply with exactly this JSON structure:

{{
  "header": {{
    "title": "personalized report title",
    "subtitle": "subtitle reflecting the chosen strategy"
  }},
  "executive_summary": {{
    "health_analysis": {{
      "score": "funnel health score",
      "description": "short health description",
      "metrics": ["metric insight 1", "metric insight 2"]
    }},
    "bottleneck_analysis": {{
      "title": "bottleneck title",
      "main_issue": "main issue",
      "details": ["issue 1", "issue 2", "issue 3"]
    }},
    "growth_opportunity": {{
      "title": "opportunity title",
      "main_opportunity": "main opportunity",
      "strategies": ["strategy 1", "strategy 2", "strategy 3"]
    }}
  }},
  "personalized_recommendations": {{
    "execution_plan": {{
      "phase_1": {{
        "title": "Phase 1",
        "duration": "{phase_one}",
        "actions": ["action 1", "action 2", "action 3"],
        "expected_results": "expected results",
        "investment_required": "required investment"
      }},
      "phase_2": {{
        "title": "Phase 2",
        "duration": "{phase_two}",
        "actions": ["action 1", "action 2", "action 3"],
        "expected_results": "expected results",
        "investment_required": "required investment"
      }},
      "phase_3": {{
        "title": "Phase 3",
        "duration": "{phase_three}",
        "actions": ["action 1", "action 2", "action 3"],
        "expected_results": "expected results",
        "investment_required": "required investment"
      }}
    }},
    "roi_analysis": {{
      "total_investment": "estimated total investment",
      "expected_revenue_increase": "expected revenue increase",
      "roi_percentage": "ROI percentage",
      "payback_period": "{profile['payback']}",
      "risk_assessment": "risk assessment"
    }}
  }}
}}"""
