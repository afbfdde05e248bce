"""REST client for the lighting backend's editor and live endpoints."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

import httpx

from lightdesk_errors import FetchError, SaveError
from lightdesk_schema import SchemaRegistry, normalize_action_schemas, normalize_effect_schemas

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8080"
DEFAULT_TIMEOUT_SECONDS = 5.0

SCHEMA_KIND_EFFECT = "effect"
SCHEMA_KIND_ACTION = "action"
SCHEMA_PATHS = {
    SCHEMA_KIND_EFFECT: "/api/effects/schema",
    SCHEMA_KIND_ACTION: "/api/actions/schema",
}


def normalize_base_url(value: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValueError("base url is empty")
    if "://" not in text:
        text = "http://" + text
    parsed = urlparse(text)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"base url scheme must be http or https: {value}")
    if not parsed.hostname:
        raise ValueError(f"base url host is empty: {value}")
    return text.rstrip("/")


def _snippet(response: httpx.Response, limit: int = 200) -> str:
    text = (response.text or "").strip()
    return text if len(text) <= limit else text[: limit - 3] + "..."


class LightdeskClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = normalize_base_url(base_url)
        self.timeout_seconds = max(0.1, float(timeout_seconds))
        self._http = httpx.Client(base_url=self.base_url, timeout=self.timeout_seconds, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "LightdeskClient":
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        body: Any | None = None,
        error_cls: type[FetchError] = FetchError,
    ) -> Any:
        url = self.base_url + path

        def error(message: str, status_code: int | None = None) -> FetchError:
            if issubclass(error_cls, SaveError):
                return SaveError(message, url=url, status_code=status_code)
            return error_cls(message, method=method, url=url, status_code=status_code)

        try:
            if body is None:
                response = self._http.request(method, path)
            else:
                response = self._http.request(method, path, json=body)
        except httpx.HTTPError as ex:
            logger.debug("%s %s failed: %s", method, url, ex)
            raise error(f"request failed: {ex}") from ex

        if not response.is_success:
            raise error(_snippet(response) or response.reason_phrase or "request failed", response.status_code)

        try:
            return response.json()
        except ValueError as ex:
            raise error("response is not JSON", response.status_code) from ex

    # Schemas and config

    def get_schema_payload(self, kind: str) -> Any:
        path = SCHEMA_PATHS.get(kind)
        if path is None:
            raise ValueError(f"unknown schema kind: {kind}")
        return self._request("GET", path)

    def load_schemas(self, kind: str) -> SchemaRegistry:
        payload = self.get_schema_payload(kind)
        try:
            if kind == SCHEMA_KIND_EFFECT:
                return normalize_effect_schemas(payload)
            return normalize_action_schemas(payload)
        except ValueError as ex:
            raise FetchError(str(ex), url=self.base_url + SCHEMA_PATHS[kind]) from ex

    def get_config(self) -> dict[str, Any]:
        payload = self._request("GET", "/api/config")
        if not isinstance(payload, dict):
            raise FetchError("config payload is not an object", url=self.base_url + "/api/config")
        return payload

    def save_config(self, payload: dict[str, Any]) -> str:
        result = self._request("POST", "/api/config", body=payload, error_cls=SaveError)
        if isinstance(result, dict):
            return str(result.get("message") or "Configuration saved.")
        return "Configuration saved."

    # Live resources

    def get_bpm(self) -> float:
        payload = self._request("GET", "/api/bpm")
        return self._bpm_from(payload, "GET")

    def set_bpm(self, bpm: float) -> float:
        payload = self._request("POST", "/api/bpm", body={"bpm": float(bpm)})
        return self._bpm_from(payload, "POST")

    def _bpm_from(self, payload: Any, method: str) -> float:
        value = payload.get("bpm") if isinstance(payload, dict) else None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise FetchError("bpm payload is invalid", method=method, url=self.base_url + "/api/bpm")
        return float(value)

    def get_chains(self) -> list[Any]:
        payload = self._request("GET", "/api/chains")
        # The backend encodes an empty chain list as null.
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise FetchError("chains payload is not a list", url=self.base_url + "/api/chains")
        return payload

    def get_events(self) -> list[str]:
        payload = self._request("GET", "/api/events")
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise FetchError("events payload is not a list", url=self.base_url + "/api/events")
        return [str(item) for item in payload]

    def trigger_event(self, event_name: str) -> Any:
        return self._request("POST", "/api/trigger", body={"eventName": event_name})
