"""Client settings: optional JSON file, environment and CLI overrides."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from lightdesk_api import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_SECONDS, normalize_base_url
from lightdesk_live import DEFAULT_POLL_SECONDS, DEFAULT_TEMPO_STEP, MIN_POLL_SECONDS

ENV_BASE_URL = "LIGHTDESK_BASE_URL"
MIN_TIMEOUT_SECONDS = 0.1

SETTINGS_KEYS = {"baseUrl", "refreshSeconds", "requestTimeoutSeconds", "tempoStep"}


@dataclass(frozen=True)
class Settings:
    base_url: str = DEFAULT_BASE_URL
    refresh_seconds: float = DEFAULT_POLL_SECONDS
    request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    tempo_step: float = DEFAULT_TEMPO_STEP


def _assert_allowed_keys(
    obj: dict[str, Any],
    allowed: set[str],
    context: str,
    *,
    allow_prefixes: tuple[str, ...] = ("x-",),
) -> None:
    extras: list[str] = []
    for key in obj.keys():
        if key in allowed:
            continue
        if key == "$schema":
            continue
        if any(str(key).startswith(prefix) for prefix in allow_prefixes):
            continue
        extras.append(str(key))
    extras = sorted(set(extras))
    if extras:
        raise ValueError(f"{context} has unsupported keys: {', '.join(extras)}")


def load_json(path: Path) -> dict[str, Any]:
    payload = json.loads(path.read_text(encoding="utf-8-sig"))
    if not isinstance(payload, dict):
        raise ValueError(f"Expected object JSON: {path}")
    return payload


def _positive_float(value: Any, context: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{context} must be a number.")
    try:
        number = float(value)
    except (TypeError, ValueError) as ex:
        raise ValueError(f"{context} must be a number.") from ex
    if not number > 0:
        raise ValueError(f"{context} must be positive.")
    return number


def load_settings_file(path: Path) -> dict[str, Any]:
    payload = load_json(path)
    _assert_allowed_keys(payload, SETTINGS_KEYS, str(path))
    result: dict[str, Any] = {}
    if "baseUrl" in payload:
        result["baseUrl"] = normalize_base_url(str(payload["baseUrl"]))
    for key in ("refreshSeconds", "requestTimeoutSeconds", "tempoStep"):
        if key in payload:
            result[key] = _positive_float(payload[key], f"{path} {key}")
    return result


def load_settings(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    base_url: str | None = None,
    refresh_seconds: float | None = None,
    request_timeout_seconds: float | None = None,
) -> Settings:
    """Resolve settings: explicit arguments, then environment, then file, then defaults."""
    env = os.environ if environ is None else environ
    merged: dict[str, Any] = {}
    if path is not None:
        merged.update(load_settings_file(path))

    env_base_url = str(env.get(ENV_BASE_URL) or "").strip()
    if env_base_url:
        merged["baseUrl"] = env_base_url
    if base_url:
        merged["baseUrl"] = base_url
    if refresh_seconds is not None:
        merged["refreshSeconds"] = _positive_float(refresh_seconds, "--refresh-seconds")
    if request_timeout_seconds is not None:
        merged["requestTimeoutSeconds"] = _positive_float(request_timeout_seconds, "--timeout")

    return Settings(
        base_url=normalize_base_url(merged.get("baseUrl", DEFAULT_BASE_URL)),
        refresh_seconds=max(MIN_POLL_SECONDS, float(merged.get("refreshSeconds", DEFAULT_POLL_SECONDS))),
        request_timeout_seconds=max(
            MIN_TIMEOUT_SECONDS, float(merged.get("requestTimeoutSeconds", DEFAULT_TIMEOUT_SECONDS))
        ),
        tempo_step=float(merged.get("tempoStep", DEFAULT_TEMPO_STEP)),
    )
