"""Edit sessions backing the WarGear, Weapon and Unit forms.

A session owns the in-memory attachment working set of one open form.  Every
mutation goes through the validators in :mod:`attachments` first and then
refreshes the derived points total.  ``submit_payload`` produces the body the
backend expects, with attachments normalized to plain references.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, ClassVar

from pydantic import BaseModel, ValidationError

from .. import models, schemas
from ..config import SELECTOR_PAGE_LIMIT, SUGGESTION_LIMIT
from . import attachments as constraints
from .attachments import AttachmentRejected, AttachmentSet, DuplicateAttachment
from .costs import PointsField, PointsMode
from .backend import BackendClient
from .estimators import UnitEstimateDialog, WeaponEstimate, estimate_weapon
from .search import CandidateSelector, Selection

logger = logging.getLogger(__name__)


class SubmissionBlocked(ValueError):
    """Raised when a form still has unresolved problems on submit."""

    def __init__(self, messages: list[str]) -> None:
        super().__init__("; ".join(messages))
        self.messages = messages


class EntityForm:
    endpoint: ClassVar[str]
    schema: ClassVar[type[BaseModel]]

    def __init__(
        self,
        *,
        entity_id: str | None = None,
        name: str = "",
        base_points: int = 0,
        rules: list[models.RuleAttachment] | None = None,
    ) -> None:
        self.entity_id = entity_id
        self.name = name
        self.rules: AttachmentSet[models.RuleAttachment] = AttachmentSet()
        for attachment in rules or []:
            self.rules.add(replace(attachment, tier=models.clamp_tier(attachment.tier)))
        self.points = PointsField(base_points)
        self.inline_error: str | None = None
        self._refresh_points()

    @property
    def is_new(self) -> bool:
        return self.entity_id is None

    @property
    def points_mode(self) -> PointsMode:
        return self.points.mode

    @property
    def total_points(self) -> int:
        return self.points.value

    def set_points(self, value: Any) -> bool:
        return self.points.set_manual(value)

    def apply_estimate(self, points: int) -> bool:
        applied = self.points.set_manual(points)
        if not applied:
            logger.info("Estimate of %s points not applied to %s: rules attached", points, self.name)
        return applied

    def add_rule(self, rule: models.Rule, tier: Any = models.MIN_TIER) -> bool:
        try:
            attachment = constraints.validate_rule_attachment(self.rules, rule, tier)
        except DuplicateAttachment:
            logger.debug("Rule %s already attached to %s", rule.id, self.name)
            return False
        except AttachmentRejected as exc:
            self.inline_error = str(exc)
            return False
        self.rules.add(attachment)
        self.inline_error = None
        self._refresh_points()
        return True

    def remove_rule(self, rule_id: str) -> bool:
        removed = self.rules.remove(rule_id)
        if removed is None:
            return False
        self._refresh_points()
        return True

    def change_tier(self, rule_id: str, tier: Any) -> bool:
        updated = self.rules.update(rule_id, tier=models.clamp_tier(tier))
        if updated is None:
            return False
        self._refresh_points()
        return True

    def rule_references(self) -> list[dict[str, Any]]:
        return [attachment.to_payload() for attachment in self.rules]

    def problems(self) -> list[str]:
        return []

    @property
    def can_submit(self) -> bool:
        return not self.problems()

    def submit_payload(self) -> dict[str, Any]:
        problems = self.problems()
        if problems:
            raise SubmissionBlocked(problems)
        body = self._body()
        body["points"] = self.points.base_points
        body["rules"] = self.rule_references()
        try:
            validated = self.schema.model_validate(body)
        except ValidationError as exc:
            raise SubmissionBlocked([error["msg"] for error in exc.errors()]) from exc
        return validated.model_dump()

    async def save(self, backend: BackendClient) -> dict[str, Any] | None:
        body = self.submit_payload()
        if self.entity_id is None:
            result = await backend.create(self.endpoint, body)
        else:
            result = await backend.update(self.endpoint, self.entity_id, body)
        if isinstance(result, dict) and self.entity_id is None:
            self.entity_id = models.identifier(result.get("id") or result.get("_id"))
        logger.info("Saved %s %s", self.endpoint, self.entity_id or self.name)
        return result

    def rule_selector(
        self, backend: BackendClient, *, limit: int = SUGGESTION_LIMIT
    ) -> CandidateSelector[models.Rule]:
        return CandidateSelector(
            backend, "rules", models.Rule.from_payload, exclude=self.rules.keys, limit=limit
        )

    def confirm_rule(self, selection: Selection[models.Rule]) -> bool:
        return self.add_rule(selection.candidate, selection.tier)

    def _body(self) -> dict[str, Any]:
        return {"name": self.name}

    def _refresh_points(self) -> int:
        return self.points.recompute(self.rules.to_list())


class WarGearForm(EntityForm):
    endpoint = "wargear"
    schema = schemas.WarGearForm

    def __init__(self, *, description: str = "", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.description = description

    @classmethod
    def from_entity(cls, wargear: models.WarGear) -> "WarGearForm":
        return cls(
            entity_id=wargear.id,
            name=wargear.name,
            description=wargear.description,
            base_points=wargear.base_points,
            rules=wargear.rules,
        )

    def _body(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description}


class WeaponForm(EntityForm):
    endpoint = "weapons"
    schema = schemas.WeaponForm

    def __init__(
        self,
        *,
        type: str = models.MELEE,
        range: int = 0,
        attacks: str = "1",
        ap: str = "0",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.type = models.normalize_slot_type(type) or models.MELEE
        self.range = range
        self.attacks = attacks
        self.ap = ap

    @classmethod
    def from_entity(cls, weapon: models.Weapon) -> "WeaponForm":
        return cls(
            entity_id=weapon.id,
            name=weapon.name,
            type=weapon.type,
            range=weapon.range,
            attacks=weapon.attacks,
            ap=weapon.ap,
            base_points=weapon.base_points,
            rules=weapon.rules,
        )

    def estimate(self) -> WeaponEstimate:
        return estimate_weapon(self.type, self.range, self.attacks, self.ap)

    def _body(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "range": max(models.coerce_int(self.range), 0),
            "attacks": str(self.attacks),
            "ap": str(self.ap),
        }


class UnitForm(EntityForm):
    endpoint = "units"
    schema = schemas.UnitForm

    def __init__(
        self,
        *,
        type: str = "",
        stats: dict[str, int] | None = None,
        amount: int = 1,
        max: int = 1,
        weapons: list[models.WeaponAttachment] | None = None,
        wargear: list[models.WarGearAttachment] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.type = type
        self.stats = dict(stats or {})
        self.amount, self.max = constraints.reconcile_model_counts(amount, max, changed="amount")
        self.weapons: AttachmentSet[models.WeaponAttachment] = AttachmentSet()
        self.wargear: AttachmentSet[models.WarGearAttachment] = AttachmentSet(wargear or [])
        for attachment in weapons or []:
            self._hydrate_weapon(attachment)
        constraints.reflow_quantities(self.weapons, self.amount)

    @classmethod
    def from_entity(cls, unit: models.Unit) -> "UnitForm":
        return cls(
            entity_id=unit.id,
            name=unit.name,
            type=unit.type,
            stats=unit.stats,
            amount=unit.amount,
            max=unit.max,
            base_points=unit.base_points,
            rules=unit.rules,
            weapons=unit.weapons,
            wargear=unit.wargear,
        )

    def _hydrate_weapon(self, attachment: models.WeaponAttachment) -> None:
        slot = models.normalize_slot_type(attachment.type)
        weapon = attachment.weapon
        if weapon is not None and models.normalize_slot_type(weapon.type) != slot:
            logger.warning(
                "Dropping %s from %s: %s weapon stored in a %s slot",
                attachment.weapon_id,
                self.name,
                weapon.type,
                slot,
            )
            return
        if slot not in models.SLOT_TYPES:
            logger.warning("Dropping %s from %s: unknown slot %r", attachment.weapon_id, self.name, slot)
            return
        if constraints.slot_count(self.weapons, slot) >= constraints.MAX_WEAPONS_PER_SLOT:
            logger.warning("Dropping %s from %s: %s slots full", attachment.weapon_id, self.name, slot)
            return
        self.weapons.add(replace(attachment, type=slot))

    def set_amount(self, value: Any) -> None:
        self.amount, self.max = constraints.reconcile_model_counts(value, self.max, changed="amount")
        constraints.reflow_quantities(self.weapons, self.amount)

    def set_max(self, value: Any) -> None:
        self.amount, self.max = constraints.reconcile_model_counts(self.amount, value, changed="max")
        constraints.reflow_quantities(self.weapons, self.amount)

    def add_weapon(self, weapon: models.Weapon, slot: str, quantity: Any = 0) -> bool:
        try:
            attachment = constraints.validate_weapon_attachment(
                self.weapons, weapon, slot, quantity, self.amount
            )
        except DuplicateAttachment:
            logger.debug("Weapon %s already attached to %s", weapon.id, self.name)
            return False
        except AttachmentRejected as exc:
            logger.debug("Rejected weapon %s for %s: %s", weapon.id, self.name, exc)
            self.inline_error = str(exc)
            return False
        self.weapons.add(attachment)
        self.inline_error = None
        return True

    def remove_weapon(self, weapon_id: str) -> bool:
        return self.weapons.remove(weapon_id) is not None

    def change_quantity(self, weapon_id: str, quantity: Any) -> bool:
        attachment = self.weapons.get(weapon_id)
        if attachment is None:
            return False
        attachment.quantity = constraints.clamp_quantity(quantity, self.amount)
        constraints.reflow_quantities(self.weapons, self.amount)
        return True

    def add_wargear(self, wargear: models.WarGear) -> bool:
        try:
            attachment = constraints.validate_wargear_attachment(self.wargear, wargear)
        except DuplicateAttachment:
            logger.debug("Wargear %s already attached to %s", wargear.id, self.name)
            return False
        except AttachmentRejected as exc:
            self.inline_error = str(exc)
            return False
        self.wargear.add(attachment)
        self.inline_error = None
        return True

    def remove_wargear(self, wargear_id: str) -> bool:
        return self.wargear.remove(wargear_id) is not None

    def weapon_selector(
        self, backend: BackendClient, *, limit: int = SELECTOR_PAGE_LIMIT
    ) -> CandidateSelector[models.Weapon]:
        return CandidateSelector(
            backend, "weapons", models.Weapon.from_payload, exclude=self.weapons.keys, limit=limit
        )

    def confirm_weapon(self, selection: Selection[models.Weapon]) -> bool:
        slot = selection.slot or selection.candidate.type
        return self.add_weapon(selection.candidate, slot, selection.quantity)

    def wargear_selector(
        self, backend: BackendClient, *, limit: int = SELECTOR_PAGE_LIMIT
    ) -> CandidateSelector[models.WarGear]:
        return CandidateSelector(
            backend, "wargear", models.WarGear.from_payload, exclude=self.wargear.keys, limit=limit
        )

    def confirm_wargear(self, selection: Selection[models.WarGear]) -> bool:
        return self.add_wargear(selection.candidate)

    def estimate_dialog(self, backend: BackendClient) -> UnitEstimateDialog:
        return UnitEstimateDialog(target=self, snapshot=self.snapshot, backend=backend)

    def slot_usage(self, slot: str) -> int:
        return constraints.slot_count(self.weapons, models.normalize_slot_type(slot))

    @property
    def quantity_warnings(self) -> list[constraints.QuantityWarning]:
        return constraints.quantity_warnings(self.weapons, self.amount)

    def problems(self) -> list[str]:
        return [warning.message for warning in self.quantity_warnings]

    def snapshot(self) -> dict[str, Any]:
        body = self._body()
        body.update(
            {
                "id": self.entity_id,
                "points": self.points.base_points,
                "rules": self.rule_references(),
            }
        )
        return body

    def _body(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "amount": self.amount,
            "max": self.max,
            "weapons": [attachment.to_payload() for attachment in self.weapons],
            "warGear": [attachment.to_payload() for attachment in self.wargear],
        }
        for stat in models.UNIT_STAT_FIELDS:
            if stat in self.stats:
                body[stat] = self.stats[stat]
        return body
