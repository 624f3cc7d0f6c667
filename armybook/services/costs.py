"""Point totals derived from a base cost and attached rule tiers."""

from __future__ import annotations

import enum
import logging
from typing import Any, Iterable, Sequence

from .. import models

logger = logging.getLogger(__name__)


def rule_points(rule: models.Rule | None, tier: int) -> int:
    if rule is None or not rule.points:
        return 0
    index = models.clamp_tier(tier) - 1
    if index >= len(rule.points):
        return 0
    value = rule.points[index]
    return int(value) if value is not None else 0


def attachment_points(attachment: models.RuleAttachment) -> int:
    return rule_points(attachment.rule, attachment.tier)


def rules_points(attachments: Iterable[models.RuleAttachment]) -> int:
    return sum(attachment_points(attachment) for attachment in attachments)


def total_points(base_points: int, attachments: Iterable[models.RuleAttachment]) -> int:
    return int(base_points) + rules_points(attachments)


def army_list_points(units: Sequence[models.Unit]) -> int:
    return sum(total_points(unit.base_points, unit.rules) for unit in units)


class PointsMode(str, enum.Enum):
    MANUAL = "manual"
    DERIVED = "derived"


class PointsField:
    """Point value shown on an edit form.

    While no rule is attached the value is typed in by the user.  Once the
    first rule is attached the field becomes a read-only total and the last
    manual value is kept as the base, so detaching every rule brings back
    exactly what the user typed.
    """

    def __init__(self, base_points: int = 0) -> None:
        self._base_points = max(int(base_points), 0)
        self._attachments: list[models.RuleAttachment] = []

    @property
    def mode(self) -> PointsMode:
        return PointsMode.DERIVED if self._attachments else PointsMode.MANUAL

    @property
    def is_editable(self) -> bool:
        return self.mode is PointsMode.MANUAL

    @property
    def base_points(self) -> int:
        return self._base_points

    @property
    def value(self) -> int:
        if self.mode is PointsMode.MANUAL:
            return self._base_points
        return total_points(self._base_points, self._attachments)

    def set_manual(self, value: Any) -> bool:
        if not self.is_editable:
            logger.debug("Ignoring manual points %s while rules are attached", value)
            return False
        self._base_points = max(models.coerce_int(value), 0)
        return True

    def recompute(self, attachments: Sequence[models.RuleAttachment]) -> int:
        self._attachments = list(attachments)
        return self.value
