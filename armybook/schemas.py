from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


class RuleReference(BaseModel):
    ruleId: str
    tier: int = Field(1, ge=1, le=3)


class WeaponReference(BaseModel):
    weaponId: str
    quantity: int = Field(0, ge=0)
    type: Literal["melee", "ranged"]


class WeaponForm(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: Literal["melee", "ranged"]
    range: int = Field(0, ge=0)
    attacks: str = "1"
    ap: str = "0"
    points: int = Field(0, ge=0)
    rules: list[RuleReference] = Field(default_factory=list)


class WarGearForm(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: str = ""
    points: int = Field(0, ge=0)
    rules: list[RuleReference] = Field(default_factory=list)


class UnitForm(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: str = ""
    melee: int | None = None
    ranged: int | None = None
    morale: int | None = None
    defense: int | None = None
    amount: int = Field(1, ge=0)
    max: int = Field(1, ge=0)
    points: int = Field(0, ge=0)
    rules: list[RuleReference] = Field(default_factory=list)
    weapons: list[WeaponReference] = Field(default_factory=list)
    warGear: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_model_counts(self) -> "UnitForm":
        if self.amount > self.max:
            raise ValueError("amount must not exceed max")
        for slot in ("melee", "ranged"):
            total = sum(ref.quantity for ref in self.weapons if ref.type == slot)
            if total > self.amount:
                raise ValueError(f"{slot} weapon quantities exceed the model count")
        return self


class RulePointsRequest(BaseModel):
    name: str
    description: str = ""
    type: str = ""


class RulePointsResponse(BaseModel):
    calculated_points: list[int] = Field(..., min_length=3, max_length=3)
    breakdown: dict[str, Any] | None = None
    explanation: str = ""


class UnitPointsBreakdown(BaseModel):
    base_cost: int = 0
    unit_rules_cost: int = 0
    weapons_cost: int = 0
    weapon_rules_cost: int = 0
    wargear_cost: int = 0
    total_points: int = 0


class UnitPointsRequest(BaseModel):
    unit: dict[str, Any]


class UnitPointsResponse(BaseModel):
    total_points: int
    breakdown: UnitPointsBreakdown = Field(default_factory=UnitPointsBreakdown)
