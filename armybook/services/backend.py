from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import ValidationError

from .. import schemas
from ..config import API_BASE_URL, REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

ENDPOINTS = ("rules", "weapons", "wargear", "units", "armybooks", "armylists", "factions")


class BackendError(Exception):
    """Raised when a request to the content backend fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PersistenceError(BackendError):
    pass


class EstimationError(BackendError):
    pass


@dataclass
class Page:
    items: list[dict[str, Any]] = field(default_factory=list)
    total: int | None = None


def normalize_list_response(payload: Any) -> Page:
    if isinstance(payload, list):
        raw_items = payload
        total = None
    elif isinstance(payload, dict):
        raw_items = payload.get("data")
        if raw_items is None:
            raw_items = payload.get("items")
        raw_total = payload.get("total")
        total = raw_total if isinstance(raw_total, int) and not isinstance(raw_total, bool) else None
    else:
        return Page()
    if not isinstance(raw_items, list):
        raw_items = []
    return Page(items=[item for item in raw_items if isinstance(item, dict)], total=total)


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("error", "message", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    text = response.text.strip() if response.text else ""
    if text and len(text) < 200 and not text.startswith(("{", "[", "<")):
        return text
    return fallback


def _check_endpoint(endpoint: str) -> str:
    if endpoint not in ENDPOINTS:
        raise ValueError(f"Unknown endpoint: {endpoint}")
    return endpoint


class BackendClient:
    """Async client for the REST backend that stores editor content."""

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        *,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_page(
        self, endpoint: str, *, name: str = "", limit: int = 50, skip: int = 0
    ) -> Page:
        path = f"/{_check_endpoint(endpoint)}"
        params: dict[str, Any] = {"limit": limit, "skip": skip}
        if name:
            params["name"] = name
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            return normalize_list_response(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Listing %s failed, showing no results: %s", endpoint, exc)
            return Page()

    async def get(self, endpoint: str, entity_id: str) -> dict[str, Any] | None:
        path = f"/{_check_endpoint(endpoint)}/{entity_id}"
        try:
            response = await self._client.get(path)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Loading %s/%s failed: %s", endpoint, entity_id, exc)
            return None
        return payload if isinstance(payload, dict) else None

    async def create(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any] | None:
        return await self._write(
            "POST", f"/{_check_endpoint(endpoint)}", body, f"Failed to save {endpoint}."
        )

    async def update(
        self, endpoint: str, entity_id: str, body: dict[str, Any]
    ) -> dict[str, Any] | None:
        return await self._write(
            "PUT",
            f"/{_check_endpoint(endpoint)}/{entity_id}",
            body,
            f"Failed to save {endpoint}.",
        )

    async def delete(self, endpoint: str, entity_id: str) -> None:
        await self._write(
            "DELETE",
            f"/{_check_endpoint(endpoint)}/{entity_id}",
            None,
            f"Failed to delete {endpoint}.",
        )

    async def import_entities(
        self, endpoint: str, items: list[dict[str, Any]]
    ) -> dict[str, Any] | None:
        return await self._write(
            "POST",
            f"/import/{_check_endpoint(endpoint)}",
            items,
            f"Failed to import {endpoint}.",
        )

    async def calculate_rule_points(
        self, request: schemas.RulePointsRequest
    ) -> schemas.RulePointsResponse:
        payload = await self._write(
            "POST",
            "/points/calculate",
            request.model_dump(),
            "Failed to calculate points.",
            error_cls=EstimationError,
        )
        try:
            return schemas.RulePointsResponse.model_validate(payload)
        except ValidationError as exc:
            logger.error("Unexpected rule points response: %s", exc)
            raise EstimationError("Backend returned an invalid points estimate.") from exc

    async def calculate_unit_points(self, unit: dict[str, Any]) -> schemas.UnitPointsResponse:
        payload = await self._write(
            "POST",
            "/calculate-unit-points",
            schemas.UnitPointsRequest(unit=unit).model_dump(),
            "Failed to calculate unit points.",
            error_cls=EstimationError,
        )
        try:
            return schemas.UnitPointsResponse.model_validate(payload)
        except ValidationError as exc:
            logger.error("Unexpected unit points response: %s", exc)
            raise EstimationError("Backend returned an invalid unit points estimate.") from exc

    async def _write(
        self,
        method: str,
        path: str,
        body: Any,
        fallback: str,
        *,
        error_cls: type[BackendError] = PersistenceError,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=body)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise error_cls(fallback) from exc
        if response.is_error:
            message = _error_message(response, fallback)
            logger.error("%s %s returned %s: %s", method, path, response.status_code, message)
            raise error_cls(message, status_code=response.status_code)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None
