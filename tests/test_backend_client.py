"""Backend client against an in-process FastAPI stand-in."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from armybook import models
from armybook.services.backend import (
    BackendClient,
    EstimationError,
    Page,
    PersistenceError,
    normalize_list_response,
)
from armybook.services.estimators import RuleEstimateDialog
from armybook.services.forms import UnitForm, WeaponForm

BASE_URL = "http://testserver/api/v1"


def _make_backend(state: dict[str, Any]) -> FastAPI:
    app = FastAPI()

    @app.get("/api/v1/rules")
    def list_rules(name: str = "", limit: int = 50, skip: int = 0):
        state["list_params"] = {"name": name, "limit": limit, "skip": skip}
        rules = [rule for rule in state["rules"] if name.lower() in rule["name"].lower()]
        return rules[skip : skip + limit]

    @app.get("/api/v1/weapons")
    def list_weapons(limit: int = 50, skip: int = 0):
        return {"data": state["weapons"][skip : skip + limit], "total": len(state["weapons"])}

    @app.get("/api/v1/factions")
    def list_factions(name: str = "", limit: int = 50, skip: int = 0):
        return [{"id": "f1", "name": "Iron Legion"}]

    @app.get("/api/v1/wargear")
    def list_wargear():
        raise HTTPException(status_code=500, detail="database offline")

    @app.post("/api/v1/weapons", status_code=201)
    def create_weapon(body: dict = Body(...)):
        state["created"] = body
        return {"id": "w-new", **body}

    @app.put("/api/v1/units/{unit_id}")
    def update_unit(unit_id: str, body: dict = Body(...)):
        if state.get("reject_units"):
            return JSONResponse(status_code=400, content={"error": "Unit name already taken"})
        state["updated"] = (unit_id, body)
        return {"id": unit_id, **body}

    @app.delete("/api/v1/units/{unit_id}")
    def delete_unit(unit_id: str):
        return JSONResponse(status_code=503, content={})

    @app.post("/api/v1/points/calculate")
    def calculate_rule(body: dict = Body(...)):
        if state.get("broken_estimate"):
            return {"calculated_points": [1, 2]}
        state["rule_request"] = body
        return {
            "calculated_points": [4, 5, 6],
            "breakdown": {"effectiveness": {"base_value": 4}},
            "explanation": "Moderate defensive rule",
        }

    @app.post("/api/v1/calculate-unit-points")
    def calculate_unit(body: dict = Body(...)):
        if state.get("unit_estimate_down"):
            return JSONResponse(status_code=502, content={"message": "Estimator unavailable"})
        state["unit_request"] = body
        return {
            "total_points": 87,
            "breakdown": {
                "base_cost": 40,
                "unit_rules_cost": 10,
                "weapons_cost": 25,
                "weapon_rules_cost": 5,
                "wargear_cost": 7,
                "total_points": 87,
            },
        }

    return app


@pytest.fixture
def state() -> dict[str, Any]:
    return {
        "rules": [
            {"id": f"r{index}", "name": f"Rule {index}", "points": [1, 2, 3]} for index in range(5)
        ],
        "weapons": [{"id": f"w{index}", "name": f"Gun {index}", "type": "ranged"} for index in range(3)],
    }


@pytest.fixture
def backend(state) -> BackendClient:
    transport = httpx.ASGITransport(app=_make_backend(state))
    return BackendClient(BASE_URL, transport=transport)


def test_list_response_shapes_are_normalized():
    assert normalize_list_response([{"id": 1}, "junk"]) == Page(items=[{"id": 1}], total=None)
    assert normalize_list_response({"data": [{"id": 1}], "total": 9}) == Page(
        items=[{"id": 1}], total=9
    )
    assert normalize_list_response({"data": None}) == Page()
    assert normalize_list_response("oops") == Page()


@pytest.mark.asyncio
async def test_list_bare_array(backend, state):
    async with backend:
        page = await backend.fetch_page("rules", name="rule 3", limit=10, skip=0)

    assert [item["id"] for item in page.items] == ["r3"]
    assert page.total is None
    assert state["list_params"] == {"name": "rule 3", "limit": 10, "skip": 0}


@pytest.mark.asyncio
async def test_list_wrapped_with_total(backend):
    async with backend:
        page = await backend.fetch_page("weapons", limit=2)

    assert len(page.items) == 2
    assert page.total == 3


@pytest.mark.asyncio
async def test_list_failure_degrades_to_empty_page(backend):
    async with backend:
        page = await backend.fetch_page("wargear")

    assert page == Page()


@pytest.mark.asyncio
async def test_unknown_endpoint_is_a_programming_error(backend):
    async with backend:
        with pytest.raises(ValueError):
            await backend.fetch_page("spells")


@pytest.mark.asyncio
async def test_weapon_form_save_creates_entity(backend, state):
    form = WeaponForm(name="Lascannon", type="ranged", range=48, attacks="1", ap="3", base_points=15)
    form.add_rule(models.Rule(id="r1", name="Deadly", points=[5, 10, 15]), tier=2)

    async with backend:
        result = await form.save(backend)

    assert result["id"] == "w-new"
    assert form.entity_id == "w-new"
    assert state["created"]["rules"] == [{"ruleId": "r1", "tier": 2}]
    assert state["created"]["points"] == 15
    assert state["created"]["type"] == "ranged"


@pytest.mark.asyncio
async def test_update_failure_surfaces_backend_message_and_keeps_form(backend, state):
    state["reject_units"] = True
    form = UnitForm(entity_id="u1", name="Marines", amount=5, max=5, base_points=90)

    async with backend:
        with pytest.raises(PersistenceError) as excinfo:
            await form.save(backend)

    assert excinfo.value.message == "Unit name already taken"
    assert excinfo.value.status_code == 400
    assert form.entity_id == "u1"
    assert form.total_points == 90


@pytest.mark.asyncio
async def test_delete_failure_uses_generic_message(backend):
    async with backend:
        with pytest.raises(PersistenceError) as excinfo:
            await backend.delete("units", "u1")

    assert str(excinfo.value) == "Failed to delete units."


@pytest.mark.asyncio
async def test_rule_analysis_fills_dialog(backend, state):
    rule = models.Rule(id="r1", name="Shield Wall", description="+1 defense", type="defensive")
    dialog = RuleEstimateDialog(rule, backend)

    async with backend:
        points = await dialog.analyze()

    assert points == [4, 5, 6]
    assert dialog.explanation == "Moderate defensive rule"
    assert state["rule_request"] == {
        "name": "Shield Wall",
        "description": "+1 defense",
        "type": "defensive",
    }
    assert rule.points == []


@pytest.mark.asyncio
async def test_invalid_rule_analysis_keeps_previous_result(backend, state):
    rule = models.Rule(id="r1", name="Shield Wall")
    dialog = RuleEstimateDialog(rule, backend)
    dialog.estimate_preset("strong", "passive")
    previous = list(dialog.points)
    state["broken_estimate"] = True

    async with backend:
        assert await dialog.analyze() is None

    assert dialog.error.startswith("Failed to calculate points")
    assert dialog.points == previous
    assert dialog.loading is False


@pytest.mark.asyncio
async def test_unit_estimate_is_applied_only_on_request(backend, state):
    form = UnitForm(name="Knights", stats={"melee": 3}, amount=3, max=5, base_points=10)
    form.add_weapon(models.Weapon(id="w1", name="Lance", type="melee"), "melee", 3)
    dialog = form.estimate_dialog(backend)

    async with backend:
        total = await dialog.calculate()

    assert total == 87
    assert dialog.breakdown.weapons_cost == 25
    assert state["unit_request"]["unit"]["weapons"] == [
        {"weaponId": "w1", "quantity": 3, "type": "melee"}
    ]
    assert form.total_points == 10

    assert dialog.apply() is True
    assert form.total_points == 87


@pytest.mark.asyncio
async def test_unit_estimate_failure_leaves_form_untouched(backend, state):
    state["unit_estimate_down"] = True
    form = UnitForm(name="Knights", amount=3, max=5, base_points=10)
    dialog = form.estimate_dialog(backend)

    async with backend:
        assert await dialog.calculate() is None

    assert dialog.error == "Failed to calculate points: Estimator unavailable"
    assert form.total_points == 10
    transport = httpx.ASGITransport(app=_make_backend(state))
    async with BackendClient(BASE_URL, transport=transport) as client:
        with pytest.raises(EstimationError):
            await client.calculate_unit_points({"name": "Knights"})


@pytest.mark.asyncio
async def test_bulk_import_posts_to_import_endpoint():
    received: dict[str, Any] = {}
    app = FastAPI()

    @app.post("/api/v1/import/rules")
    def import_rules(body: list = Body(...)):
        received["body"] = body
        return {"imported": len(body), "ids": ["r1", "r2"]}

    rules = [models.Rule(id=None, name=name, points=[1, 2, 3]) for name in ("Tough", "Fast")]
    async with BackendClient(BASE_URL, transport=httpx.ASGITransport(app=app)) as client:
        result = await client.import_entities("rules", [rule.to_payload() for rule in rules])

    assert result == {"imported": 2, "ids": ["r1", "r2"]}
    assert [entry["name"] for entry in received["body"]] == ["Tough", "Fast"]


@pytest.mark.asyncio
async def test_factions_are_listed(backend):
    async with backend:
        page = await backend.fetch_page("factions")

    assert page.items == [{"id": "f1", "name": "Iron Legion"}]


@pytest.mark.asyncio
async def test_unit_estimate_retry_sends_current_unit(backend, state):
    state["unit_estimate_down"] = True
    form = UnitForm(name="Knights", amount=3, max=5, base_points=10)
    dialog = form.estimate_dialog(backend)

    async with backend:
        assert await dialog.calculate() is None
        form.set_amount(4)
        state["unit_estimate_down"] = False
        assert await dialog.calculate() == 87

    assert state["unit_request"]["unit"]["amount"] == 4
    assert dialog.error is None
