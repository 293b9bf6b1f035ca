"""Budget rule profiles (50/30/20 and friends) and how they map onto groups."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from ..constants.categories import RULE_BUCKET_GROUPS
from ..errors import ValidationError

DEVIATION_WARNING = 5.0
DEVIATION_CRITICAL = 10.0


@dataclass(frozen=True)
class BudgetRule:
    id: str
    name: str
    description: str
    percentages: Mapping[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "percentages": dict(self.percentages),
        }


RULES: dict[str, BudgetRule] = {
    "50_30_20": BudgetRule(
        "50_30_20",
        "50/30/20",
        "50% needs, 30% lifestyle, 20% savings and investments.",
        {"needs": 0.50, "lifestyle": 0.30, "future": 0.20},
    ),
    "40_30_20_10": BudgetRule(
        "40_30_20_10",
        "40/30/20/10",
        "40% housing, 30% other needs, 20% future, 10% lifestyle.",
        {"housing": 0.40, "other_needs": 0.30, "future": 0.20, "lifestyle": 0.10},
    ),
    "PAY_YOURSELF_FIRST": BudgetRule(
        "PAY_YOURSELF_FIRST",
        "Pay Yourself First",
        "Put 30% toward the future first, then cover needs and lifestyle.",
        {"future": 0.30, "needs": 0.50, "lifestyle": 0.20},
    ),
    "60_FIXED": BudgetRule(
        "60_FIXED",
        "60% Fixed Costs",
        "60% fixed costs, 20% future, 20% lifestyle.",
        {"needs": 0.60, "future": 0.20, "lifestyle": 0.20},
    ),
}


@dataclass(frozen=True)
class GroupMapping:
    group_id: int
    group_name: str
    rule_category: str


def get_rule(rule_id: str) -> BudgetRule:
    rule = RULES.get((rule_id or "").strip().upper())
    if rule is None:
        raise ValidationError(f"Unknown budget rule: {rule_id}")
    return rule


def suggest_rule(monthly_income: float, city_cost: Optional[str] = None) -> dict[str, Any]:
    """Pick a rule for the income level and local cost of living."""

    if city_cost == "high":
        rule, confidence = RULES["40_30_20_10"], "high"
        explanation = "Housing costs are high, so the 40/30/20/10 rule budgets for them explicitly."
    elif monthly_income > 10000:
        rule, confidence = RULES["PAY_YOURSELF_FIRST"], "medium"
        explanation = "At this income level paying yourself first builds wealth fastest."
    elif monthly_income < 3000:
        rule, confidence = RULES["60_FIXED"], "medium"
        explanation = "The 60% fixed costs rule gives stability on a tighter income."
    else:
        rule, confidence = RULES["50_30_20"], "high"
        explanation = "The 50/30/20 rule works well for most people."
    return {"rule": rule.to_dict(), "explanation": explanation, "confidence": confidence}


def map_groups(rule: BudgetRule, groups: Iterable[Any]) -> list[GroupMapping]:
    """Assign expense groups to the buckets ``rule`` uses, by group name."""

    buckets = [bucket for bucket, pct in rule.percentages.items() if pct > 0]
    mappings = []
    for group in groups:
        if getattr(group, "group_type", "expense") != "expense":
            continue
        for bucket in buckets:
            if group.name in RULE_BUCKET_GROUPS.get(bucket, []):
                mappings.append(GroupMapping(group.id, group.name, bucket))
                break
    return mappings


def calculate_budget_amounts(
    rule: BudgetRule, monthly_income: float, group_mappings: Iterable[GroupMapping]
) -> list[dict[str, Any]]:
    """Split each bucket's share of income evenly among its groups."""

    by_bucket: dict[str, list[GroupMapping]] = {}
    for mapping in group_mappings:
        by_bucket.setdefault(mapping.rule_category, []).append(mapping)

    amounts = []
    for bucket, pct in rule.percentages.items():
        groups = by_bucket.get(bucket) or []
        if pct <= 0 or not groups:
            continue
        per_group = monthly_income * pct / len(groups)
        for mapping in groups:
            amounts.append(
                {"group_id": mapping.group_id, "amount": round(per_group, 2), "rule_category": bucket}
            )
    return amounts


def validate_against_rule(
    rule: BudgetRule,
    monthly_income: float,
    spending_by_group: Mapping[int, float],
    group_mappings: Iterable[GroupMapping],
) -> dict[str, Any]:
    """Compare actual spending per bucket with the rule's targets.

    Buckets off target by more than 5 points raise a ``warning`` alert, more
    than 10 a ``critical`` one.
    """

    if monthly_income <= 0:
        return {"is_valid": True, "alerts": []}

    bucket_of = {mapping.group_id: mapping.rule_category for mapping in group_mappings}
    spent: dict[str, float] = {}
    for group_id, amount in spending_by_group.items():
        bucket = bucket_of.get(group_id)
        if bucket:
            spent[bucket] = spent.get(bucket, 0.0) + abs(amount)

    alerts = []
    for bucket, pct in rule.percentages.items():
        if pct <= 0:
            continue
        actual_pct = spent.get(bucket, 0.0) / monthly_income * 100
        target_pct = pct * 100
        deviation = actual_pct - target_pct
        if abs(deviation) <= DEVIATION_WARNING:
            continue
        label = bucket.replace("_", " ")
        alerts.append(
            {
                "category": bucket,
                "severity": "critical" if abs(deviation) > DEVIATION_CRITICAL else "warning",
                "title": f"{label.capitalize()} spending alert",
                "description": f"You're spending {actual_pct:.1f}% on {label}. The target is {target_pct:.0f}%.",
                "actual_percentage": round(actual_pct, 2),
                "target_percentage": target_pct,
            }
        )
    return {"is_valid": not alerts, "alerts": alerts}
