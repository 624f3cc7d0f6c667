from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

MELEE = "melee"
RANGED = "ranged"
SLOT_TYPES = (MELEE, RANGED)

MIN_TIER = 1
MAX_TIER = 3


def coerce_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def identifier(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("id") or value.get("_id") or value.get("$oid")
        if value is None:
            return None
    text = str(value).strip()
    return text or None


def clamp_tier(value: Any) -> int:
    tier = coerce_int(value, MIN_TIER)
    return max(MIN_TIER, min(MAX_TIER, tier))


def normalize_slot_type(value: Any) -> str:
    return _text(value).strip().casefold()


@dataclass
class Rule:
    id: str | None
    name: str
    description: str = ""
    type: str = ""
    points: list[int] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Rule":
        raw_points = data.get("points")
        points: list[int] = []
        if isinstance(raw_points, (list, tuple)):
            for value in list(raw_points)[:MAX_TIER]:
                points.append(max(coerce_int(value), 0))
        return cls(
            id=identifier(data.get("id") or data.get("_id")),
            name=_text(data.get("name")),
            description=_text(data.get("description")),
            type=_text(data.get("type")),
            points=points,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "points": list(self.points),
        }


@dataclass
class RuleAttachment:
    rule_id: str
    tier: int = MIN_TIER
    rule: Rule | None = None

    @property
    def key(self) -> str:
        return self.rule_id

    def to_payload(self) -> dict[str, Any]:
        return {"ruleId": self.rule_id, "tier": clamp_tier(self.tier)}


@dataclass
class Weapon:
    id: str | None
    name: str
    type: str = MELEE
    range: int = 0
    attacks: str = "1"
    ap: str = "0"
    base_points: int = 0
    rules: list[RuleAttachment] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Weapon":
        return cls(
            id=identifier(data.get("id") or data.get("_id")),
            name=_text(data.get("name")),
            type=normalize_slot_type(data.get("type")) or MELEE,
            range=max(coerce_int(data.get("range")), 0),
            attacks=_text(data.get("attacks")) or "1",
            ap=_text(data.get("ap")) or "0",
            base_points=max(coerce_int(data.get("points")), 0),
            rules=rule_attachments_from_payload(data),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "range": self.range,
            "attacks": self.attacks,
            "ap": self.ap,
        }


@dataclass
class WeaponAttachment:
    weapon_id: str
    type: str
    quantity: int = 0
    weapon: Weapon | None = None

    @property
    def key(self) -> str:
        return self.weapon_id

    def to_payload(self) -> dict[str, Any]:
        return {"weaponId": self.weapon_id, "quantity": self.quantity, "type": self.type}


@dataclass
class WarGear:
    id: str | None
    name: str
    description: str = ""
    base_points: int = 0
    rules: list[RuleAttachment] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "WarGear":
        return cls(
            id=identifier(data.get("id") or data.get("_id")),
            name=_text(data.get("name")),
            description=_text(data.get("description")),
            base_points=max(coerce_int(data.get("points")), 0),
            rules=rule_attachments_from_payload(data),
        )

    def to_payload(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description}


@dataclass
class WarGearAttachment:
    wargear_id: str
    wargear: WarGear | None = None

    @property
    def key(self) -> str:
        return self.wargear_id

    def to_payload(self) -> str:
        return self.wargear_id


UNIT_STAT_FIELDS = ("melee", "ranged", "morale", "defense")


@dataclass
class Unit:
    id: str | None
    name: str
    type: str = ""
    stats: dict[str, int] = field(default_factory=dict)
    amount: int = 1
    max: int = 1
    base_points: int = 0
    rules: list[RuleAttachment] = field(default_factory=list)
    weapons: list[WeaponAttachment] = field(default_factory=list)
    wargear: list[WarGearAttachment] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Unit":
        amount = max(coerce_int(data.get("amount"), 1), 0)
        maximum = max(coerce_int(data.get("max"), amount), amount)
        stats = {
            name: coerce_int(data.get(name))
            for name in UNIT_STAT_FIELDS
            if data.get(name) is not None
        }
        return cls(
            id=identifier(data.get("id") or data.get("_id")),
            name=_text(data.get("name")),
            type=_text(data.get("type")),
            stats=stats,
            amount=amount,
            max=maximum,
            base_points=max(coerce_int(data.get("points")), 0),
            rules=rule_attachments_from_payload(data),
            weapons=weapon_attachments_from_payload(data),
            wargear=wargear_attachments_from_payload(data),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "amount": self.amount,
            "max": self.max,
        }
        payload.update(self.stats)
        return payload


@dataclass
class ArmyBook:
    id: str | None
    name: str
    faction: str = ""
    description: str = ""
    unit_ids: list[str] = field(default_factory=list)
    rules: list[RuleAttachment] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "ArmyBook":
        return cls(
            id=identifier(data.get("id") or data.get("_id")),
            name=_text(data.get("name")),
            faction=_text(data.get("faction")),
            description=_text(data.get("description")),
            unit_ids=_identifier_list(data.get("unitIds")),
            rules=rule_attachments_from_payload(data),
        )


@dataclass
class ArmyList:
    id: str | None
    name: str
    player: str = ""
    faction: str = ""
    description: str = ""
    points: int = 0
    unit_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "ArmyList":
        return cls(
            id=identifier(data.get("id") or data.get("_id")),
            name=_text(data.get("name")),
            player=_text(data.get("player")),
            faction=_text(data.get("faction")),
            description=_text(data.get("description")),
            points=max(coerce_int(data.get("points")), 0),
            unit_ids=_identifier_list(data.get("unitIds")),
        )


def _identifier_list(values: Iterable[Any] | None) -> list[str]:
    result: list[str] = []
    for value in values or []:
        key = identifier(value)
        if key and key not in result:
            result.append(key)
    return result


def _dict_entries(values: Any) -> list[dict[str, Any]]:
    if not isinstance(values, (list, tuple)):
        return []
    return [entry for entry in values if isinstance(entry, dict)]


def rule_attachments_from_payload(data: dict[str, Any]) -> list[RuleAttachment]:
    """Rebuild rule attachments from a persisted entity.

    The backend returns references either normalized (``rules`` holding
    ``{ruleId, tier}``) or populated (``populatedRules`` or ``rules`` holding
    full rule documents with an extra ``tier`` key).  Both shapes may be
    present at once; the populated documents then only supply the rule data.
    """
    populated: dict[str, tuple[Rule, Any]] = {}
    for entry in _dict_entries(data.get("populatedRules")):
        rule = Rule.from_payload(entry)
        if rule.id:
            populated[rule.id] = (rule, entry.get("tier"))

    attachments: list[RuleAttachment] = []
    seen: set[str] = set()

    def _append(rule_id: str | None, tier: Any, rule: Rule | None) -> None:
        if not rule_id or rule_id in seen:
            return
        seen.add(rule_id)
        attachments.append(RuleAttachment(rule_id=rule_id, tier=clamp_tier(tier), rule=rule))

    for entry in _dict_entries(data.get("rules")):
        if "ruleId" in entry:
            rule_id = identifier(entry.get("ruleId"))
            resolved = populated.get(rule_id or "")
            tier = entry.get("tier")
            if tier is None and resolved is not None:
                tier = resolved[1]
            _append(rule_id, tier, resolved[0] if resolved else None)
        else:
            rule = Rule.from_payload(entry)
            _append(rule.id, entry.get("tier"), rule)

    if not attachments:
        for rule_id, (rule, tier) in populated.items():
            _append(rule_id, tier, rule)
    return attachments


def weapon_attachments_from_payload(data: dict[str, Any]) -> list[WeaponAttachment]:
    populated: dict[str, dict[str, Any]] = {}
    for entry in _dict_entries(data.get("populatedWeapons")):
        key = identifier(entry.get("id") or entry.get("_id"))
        if key:
            populated[key] = entry

    attachments: list[WeaponAttachment] = []
    seen: set[str] = set()
    references = _dict_entries(data.get("weapons"))
    if not references:
        references = [{"weaponId": value} for value in _identifier_list(data.get("weaponIds"))]
    if not references:
        references = [
            {"weaponId": key, "quantity": entry.get("quantity"), "type": entry.get("slot")}
            for key, entry in populated.items()
        ]

    for entry in references:
        weapon_id = identifier(entry.get("weaponId") or entry.get("id"))
        if not weapon_id or weapon_id in seen:
            continue
        seen.add(weapon_id)
        source = populated.get(weapon_id)
        if source is None and "weaponId" not in entry:
            source = entry
        weapon = Weapon.from_payload(source) if source is not None else None
        slot = normalize_slot_type(entry.get("type"))
        if not slot and weapon is not None:
            slot = weapon.type
        attachments.append(
            WeaponAttachment(
                weapon_id=weapon_id,
                type=slot or MELEE,
                quantity=max(coerce_int(entry.get("quantity")), 0),
                weapon=weapon,
            )
        )
    return attachments


def wargear_attachments_from_payload(data: dict[str, Any]) -> list[WarGearAttachment]:
    populated: dict[str, WarGear] = {}
    for entry in _dict_entries(data.get("populatedWarGear")):
        item = WarGear.from_payload(entry)
        if item.id:
            populated[item.id] = item

    identifiers = _identifier_list(data.get("warGear") or data.get("warGearIds"))
    if not identifiers:
        identifiers = list(populated)
    return [
        WarGearAttachment(wargear_id=key, wargear=populated.get(key))
        for key in identifiers
    ]
