from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Generic, Iterable, Iterator, Protocol, Sequence, TypeVar

from .. import models

logger = logging.getLogger(__name__)

MAX_WEAPONS_PER_SLOT = 3


class Attachment(Protocol):
    @property
    def key(self) -> str: ...


T = TypeVar("T", bound=Attachment)


class AttachmentRejected(ValueError):
    """Raised when an attachment mutation would break an invariant."""


class DuplicateAttachment(AttachmentRejected):
    pass


class SlotMismatch(AttachmentRejected):
    pass


class SlotFull(AttachmentRejected):
    pass


class AttachmentSet(Generic[T]):
    """Ordered attachments of one parent, unique by child identifier."""

    def __init__(self, items: Iterable[T] = ()) -> None:
        self._items: list[T] = []
        for item in items:
            self.add(item)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return any(item.key == key for item in self._items)

    def __repr__(self) -> str:
        return f"AttachmentSet({self._items!r})"

    def keys(self) -> list[str]:
        return [item.key for item in self._items]

    def get(self, key: str) -> T | None:
        for item in self._items:
            if item.key == key:
                return item
        return None

    def add(self, item: T) -> bool:
        if item.key in self:
            return False
        self._items.append(item)
        return True

    def remove(self, key: str) -> T | None:
        for index, item in enumerate(self._items):
            if item.key == key:
                return self._items.pop(index)
        return None

    def update(self, key: str, **changes: Any) -> T | None:
        item = self.get(key)
        if item is None:
            return None
        for name, value in changes.items():
            setattr(item, name, value)
        return item

    def clear(self) -> None:
        self._items.clear()

    def to_list(self) -> list[T]:
        return list(self._items)


def validate_rule_attachment(
    attachments: AttachmentSet[models.RuleAttachment],
    rule: models.Rule,
    tier: Any = models.MIN_TIER,
) -> models.RuleAttachment:
    if not rule.id:
        raise AttachmentRejected(f"Rule {rule.name!r} has no identifier.")
    if rule.id in attachments:
        raise DuplicateAttachment(f"Rule {rule.name!r} is already attached.")
    return models.RuleAttachment(rule_id=rule.id, tier=models.clamp_tier(tier), rule=rule)


def slot_count(attachments: Iterable[models.WeaponAttachment], slot: str) -> int:
    return sum(1 for attachment in attachments if attachment.type == slot)


def clamp_quantity(quantity: Any, amount: int) -> int:
    value = models.coerce_int(quantity)
    return max(0, min(value, max(int(amount), 0)))


def validate_weapon_attachment(
    attachments: AttachmentSet[models.WeaponAttachment],
    weapon: models.Weapon,
    slot: str,
    quantity: Any,
    amount: int,
) -> models.WeaponAttachment:
    slot_type = models.normalize_slot_type(slot)
    if not weapon.id:
        raise AttachmentRejected(f"Weapon {weapon.name!r} has no identifier.")
    if weapon.id in attachments:
        raise DuplicateAttachment(f"Weapon {weapon.name!r} is already attached.")
    if slot_type not in models.SLOT_TYPES or models.normalize_slot_type(weapon.type) != slot_type:
        raise SlotMismatch(
            f"{weapon.name} is a {weapon.type or 'untyped'} weapon and cannot fill a "
            f"{slot_type or 'unknown'} slot."
        )
    if slot_count(attachments, slot_type) >= MAX_WEAPONS_PER_SLOT:
        raise SlotFull(f"A unit can carry at most {MAX_WEAPONS_PER_SLOT} {slot_type} weapons.")
    return models.WeaponAttachment(
        weapon_id=weapon.id,
        type=slot_type,
        quantity=clamp_quantity(quantity, amount),
        weapon=weapon,
    )


def validate_wargear_attachment(
    attachments: AttachmentSet[models.WarGearAttachment], wargear: models.WarGear
) -> models.WarGearAttachment:
    if not wargear.id:
        raise AttachmentRejected(f"Wargear {wargear.name!r} has no identifier.")
    if wargear.id in attachments:
        raise DuplicateAttachment(f"Wargear {wargear.name!r} is already attached.")
    return models.WarGearAttachment(wargear_id=wargear.id, wargear=wargear)


def reconcile_model_counts(amount: Any, maximum: Any, *, changed: str) -> tuple[int, int]:
    """Keep ``amount <= max`` after an edit of one of them.

    Raising ``amount`` past ``max`` drags ``max`` up, lowering ``max`` below
    ``amount`` drags ``amount`` down.
    """
    amount_value = max(models.coerce_int(amount), 0)
    max_value = max(models.coerce_int(maximum), 0)
    if amount_value <= max_value:
        return amount_value, max_value
    if changed == "max":
        return max_value, max_value
    return amount_value, amount_value


def reflow_quantities(
    attachments: AttachmentSet[models.WeaponAttachment], amount: int
) -> list[str]:
    changed: list[str] = []
    for attachment in attachments:
        clamped = clamp_quantity(attachment.quantity, amount)
        if clamped != attachment.quantity:
            attachment.quantity = clamped
            changed.append(attachment.weapon_id)
    if changed:
        logger.debug("Clamped weapon quantities %s to %s models", changed, amount)
    return changed


@dataclass(frozen=True)
class QuantityWarning:
    slot: str
    total: int
    amount: int

    @property
    def message(self) -> str:
        return (
            f"{self.slot.capitalize()} weapons are assigned to {self.total} models "
            f"but the unit only has {self.amount}."
        )


def quantity_warnings(
    attachments: Sequence[models.WeaponAttachment] | AttachmentSet[models.WeaponAttachment],
    amount: int,
) -> list[QuantityWarning]:
    warnings: list[QuantityWarning] = []
    for slot in models.SLOT_TYPES:
        total = sum(attachment.quantity for attachment in attachments if attachment.type == slot)
        if total > amount:
            warnings.append(QuantityWarning(slot=slot, total=total, amount=amount))
    return warnings
