"""Advisory point estimates for rules, weapons and units.

Nothing here writes to an entity on its own: every dialog keeps its last
result until the caller explicitly applies it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from .. import models, schemas
from .backend import BackendClient, EstimationError
from .utils import clamp, leading_int, round_points

logger = logging.getLogger(__name__)

RULE_MIN_POINTS = 2.0
RULE_MAX_POINTS = 150.0
TIER_MULTIPLIERS = (1.0, 1.1, 1.21)

PRESET_MIN_POINTS = 1.0
PRESET_MAX_POINTS = 75

BASE_EFFECTIVENESS = {
    "minimal": 1.0,
    "moderate": 3.0,
    "strong": 5.0,
    "overpowered": 8.0,
}
FREQUENCY_MULTIPLIERS = {
    "passive": 1.0,
    "conditional": 0.7,
    "limited": 0.4,
}

MAX_RANGE = 48
WILDCARD_ATTACKS = 3


@dataclass
class RuleEstimateInputs:
    base_value: float = 5.0
    multiplier: float = 1.0
    complexity: float = 1.0
    game_impact: float = 1.0

    def clamped(self) -> "RuleEstimateInputs":
        return RuleEstimateInputs(
            base_value=clamp(float(self.base_value), 1.0, 10.0),
            multiplier=clamp(float(self.multiplier), 0.1, 2.0),
            complexity=clamp(float(self.complexity), 1.0, 5.0),
            game_impact=clamp(float(self.game_impact), 1.0, 5.0),
        )


def _tiers_from_base(base: float) -> list[int]:
    tier1 = round_points(base)
    return [tier1, round_points(tier1 * TIER_MULTIPLIERS[1]), round_points(tier1 * TIER_MULTIPLIERS[2])]


def estimate_rule_points(inputs: RuleEstimateInputs) -> list[int]:
    values = inputs.clamped()
    combined = values.base_value + values.complexity * 0.2 + values.game_impact * 0.3
    final = combined * values.multiplier
    base = clamp(math.pow(2, (final - 1) / 2), RULE_MIN_POINTS, RULE_MAX_POINTS)
    return _tiers_from_base(base)


def estimate_rule_points_preset(
    effectiveness: str = "moderate",
    frequency: str = "conditional",
    multiplier: float = 1.0,
) -> list[int]:
    weight = BASE_EFFECTIVENESS.get(effectiveness, BASE_EFFECTIVENESS["moderate"])
    frequency_factor = FREQUENCY_MULTIPLIERS.get(frequency, FREQUENCY_MULTIPLIERS["conditional"])
    score = weight * clamp(float(multiplier), 0.1, 2.0) * frequency_factor
    base = clamp(math.pow(2, (score - 1) / 2), PRESET_MIN_POINTS, PRESET_MAX_POINTS)
    tiers = [round_points(base * factor) for factor in TIER_MULTIPLIERS]
    # Every tier costs at least one point more than the one below it.
    if tiers[1] <= tiers[0]:
        tiers[1] = tiers[0] + 1
    if tiers[2] <= tiers[1]:
        tiers[2] = tiers[1] + 1
    return [min(value, PRESET_MAX_POINTS) for value in tiers]


def parse_attacks(value: Any) -> int:
    if isinstance(value, str) and value.strip() in {"X", "x"}:
        return WILDCARD_ATTACKS
    parsed = leading_int(value)
    if parsed is None:
        return 1
    return max(1, parsed)


def parse_ap(value: Any) -> int:
    parsed = leading_int(value)
    if parsed is None:
        return 0
    return max(0, parsed)


def parse_range(value: Any) -> int:
    parsed = leading_int(value)
    if parsed is None:
        return 0
    return max(0, parsed)


@dataclass(frozen=True)
class WeaponEstimate:
    range: int
    attacks: int
    ap: int
    range_score: float
    attacks_score: float
    ap_score: float

    @property
    def total_score(self) -> float:
        return self.range_score + self.attacks_score + self.ap_score

    @property
    def points(self) -> int:
        return max(1, round_points(self.total_score))

    def as_dict(self) -> dict[str, Any]:
        return {
            "range": self.range,
            "attacks": self.attacks,
            "ap": self.ap,
            "rangeScore": self.range_score,
            "attacksScore": self.attacks_score,
            "apScore": self.ap_score,
            "totalScore": self.total_score,
            "points": self.points,
        }


def estimate_weapon(weapon_type: str, range_value: Any, attacks: Any, ap: Any) -> WeaponEstimate:
    attacks_value = parse_attacks(attacks)
    ap_value = parse_ap(ap)
    range_inches = parse_range(range_value)
    if models.normalize_slot_type(weapon_type) == models.RANGED:
        range_inches = min(range_inches, MAX_RANGE)
        return WeaponEstimate(
            range=range_inches,
            attacks=attacks_value,
            ap=ap_value,
            range_score=min(range_inches / 6, 8),
            attacks_score=min(attacks_value * 2, 10),
            ap_score=min(ap_value * 3, 15),
        )
    return WeaponEstimate(
        range=range_inches,
        attacks=attacks_value,
        ap=ap_value,
        range_score=0,
        attacks_score=min(attacks_value * 3, 15),
        ap_score=min(ap_value * 4, 20),
    )


class PointsTarget(Protocol):
    def apply_estimate(self, points: int) -> bool: ...


class RuleEstimateDialog:
    """Rule calculator with a local manual mode and a backend analysis mode."""

    def __init__(self, rule: models.Rule, backend: BackendClient | None = None) -> None:
        self.rule = rule
        self.backend = backend
        self.points: list[int] = [0, 0, 0]
        self.breakdown: dict[str, Any] | None = None
        self.explanation = ""
        self.error: str | None = None
        self.loading = False

    def estimate_manual(self, inputs: RuleEstimateInputs) -> list[int]:
        self.error = None
        self.breakdown = None
        self.explanation = ""
        self.points = estimate_rule_points(inputs)
        return list(self.points)

    def estimate_preset(
        self, effectiveness: str, frequency: str, multiplier: float = 1.0
    ) -> list[int]:
        self.error = None
        self.breakdown = None
        self.explanation = ""
        self.points = estimate_rule_points_preset(effectiveness, frequency, multiplier)
        return list(self.points)

    async def analyze(self) -> list[int] | None:
        if self.backend is None:
            self.error = "Automatic analysis is not available."
            return None
        self.loading = True
        self.error = None
        try:
            result = await self.backend.calculate_rule_points(
                schemas.RulePointsRequest(
                    name=self.rule.name,
                    description=self.rule.description,
                    type=self.rule.type,
                )
            )
        except EstimationError as exc:
            self.error = f"Failed to calculate points: {exc}"
            return None
        finally:
            self.loading = False
        self.points = list(result.calculated_points)
        self.breakdown = result.breakdown
        self.explanation = result.explanation
        return list(self.points)

    def apply(self) -> list[int]:
        self.rule.points = [max(int(value), 0) for value in self.points]
        logger.info("Applied estimated points %s to rule %s", self.rule.points, self.rule.name)
        return list(self.rule.points)


@dataclass
class UnitEstimateDialog:
    target: PointsTarget
    snapshot: Callable[[], dict[str, Any]]
    backend: BackendClient
    total_points: int = 0
    breakdown: schemas.UnitPointsBreakdown | None = None
    error: str | None = None
    loading: bool = False
    applied: bool = field(default=False, init=False)

    async def calculate(self) -> int | None:
        self.loading = True
        self.error = None
        try:
            result = await self.backend.calculate_unit_points(self.snapshot())
        except EstimationError as exc:
            self.error = f"Failed to calculate points: {exc}"
            return None
        finally:
            self.loading = False
        self.total_points = result.total_points
        self.breakdown = result.breakdown
        return self.total_points

    def apply(self) -> bool:
        self.applied = self.target.apply_estimate(self.total_points)
        return self.applied
