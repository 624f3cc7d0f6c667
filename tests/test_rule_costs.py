import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from armybook import models
from armybook.services import costs
from armybook.services.forms import WarGearForm, WeaponForm


def _rule(rule_id: str, points: list[int]) -> models.Rule:
    return models.Rule(id=rule_id, name=f"Rule {rule_id}", points=points)


def _attached(rule: models.Rule, tier: int) -> models.RuleAttachment:
    return models.RuleAttachment(rule_id=rule.id, tier=tier, rule=rule)


def test_total_adds_selected_tier_cost():
    rule = _rule("r1", [5, 10, 15])

    assert costs.total_points(8, [_attached(rule, 2)]) == 18


def test_total_sums_every_attachment():
    first = _rule("r1", [1, 2, 3])
    second = _rule("r2", [4, 6, 8])

    total = costs.total_points(10, [_attached(first, 3), _attached(second, 1)])

    assert total == 10 + 3 + 4


def test_missing_tier_costs_count_as_zero():
    short_rule = _rule("r1", [7])
    empty_rule = _rule("r2", [])

    assert costs.total_points(3, [_attached(short_rule, 2)]) == 3
    assert costs.total_points(3, [_attached(empty_rule, 1)]) == 3
    assert costs.rule_points(None, 1) == 0


def test_out_of_range_tier_is_clamped_when_costing():
    rule = _rule("r1", [5, 10, 15])

    assert costs.rule_points(rule, 0) == 5
    assert costs.rule_points(rule, 7) == 15


def test_army_list_points_sum_unit_totals():
    rule = _rule("r1", [2, 4, 6])
    units = [
        models.Unit(id="u1", name="Guard", base_points=20, rules=[_attached(rule, 2)]),
        models.Unit(id="u2", name="Scouts", base_points=15),
    ]

    assert costs.army_list_points(units) == 39


def test_points_field_is_manual_without_rules():
    form = WeaponForm(name="Bolter", base_points=8)

    assert form.points_mode is costs.PointsMode.MANUAL
    assert form.set_points(12) is True
    assert form.total_points == 12


def test_points_field_becomes_derived_once_a_rule_is_attached():
    form = WeaponForm(name="Bolter", base_points=8)
    form.add_rule(_rule("r1", [5, 10, 15]), tier=2)

    assert form.points_mode is costs.PointsMode.DERIVED
    assert form.total_points == 18
    assert form.set_points(40) is False
    assert form.total_points == 18


def test_removing_last_rule_restores_manual_value():
    form = WarGearForm(name="Shield", base_points=6)
    form.set_points(9)
    form.add_rule(_rule("r1", [3, 6, 9]), tier=3)
    form.add_rule(_rule("r2", [1, 1, 1]))
    assert form.total_points == 19

    form.remove_rule("r1")
    form.remove_rule("r2")

    assert form.points_mode is costs.PointsMode.MANUAL
    assert form.total_points == 9


def test_tier_change_recomputes_total():
    form = WeaponForm(name="Sword", base_points=4)
    form.add_rule(_rule("r1", [1, 5, 9]))
    assert form.total_points == 5

    assert form.change_tier("r1", 3) is True
    assert form.total_points == 13
    assert form.change_tier("missing", 2) is False


def test_duplicate_add_and_absent_remove_are_no_ops():
    rule = _rule("r1", [5, 10, 15])
    form = WeaponForm(name="Axe", base_points=2)

    assert form.add_rule(rule, tier=1) is True
    assert form.add_rule(rule, tier=3) is False
    assert form.remove_rule("unknown") is False

    assert form.rules.keys() == ["r1"]
    assert form.rules.get("r1").tier == 1
    assert form.total_points == 7


def test_non_numeric_manual_points_fall_back_to_zero():
    form = WeaponForm(name="Blade", base_points=4)

    assert form.set_points("abc") is True
    assert form.total_points == 0
    assert form.set_points("7") is True
    assert form.total_points == 7
