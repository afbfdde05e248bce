#!/usr/bin/env python3
"""Minimal lighting backend sample server for editor integration testing."""

from __future__ import annotations

import argparse
import copy
import json
import threading
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

EFFECT_SCHEMAS: dict[str, Any] = {
    "solid_color": {
        "args": {
            "color": {"type": "string", "default": "#ffffff", "display_name": "Color"},
            "brightness": {"type": "int", "default": 255, "min": 0, "max": 255, "display_name": "Brightness"},
        }
    },
    "blink": {
        "args": {
            "divider": {
                "type": "int",
                "default": 1,
                "min": 1,
                "display_name": "Divider",
                "description": "Divides the beat into segments for faster blinking.",
            },
            "dutyCycle": {
                "type": "float64",
                "default": 0.5,
                "min": 0.0,
                "max": 1.0,
                "display_name": "Duty Cycle",
            },
        }
    },
    "rainbow": {"args": {}},
}

ACTION_SCHEMAS: dict[str, Any] = {
    "set_effect_enabled": {
        "human_readable_name": "Set Effect Enabled",
        "Parameters": [
            {"internal_name": "chain_id", "display_name": "Chain", "data_type": "string", "default_value": ""},
            {"internal_name": "effect_id", "display_name": "Effect", "data_type": "string", "default_value": ""},
            {"internal_name": "enabled", "display_name": "Enabled", "data_type": "bool", "default_value": True},
        ],
    },
    "set_bpm": {
        "human_readable_name": "Set BPM",
        "Parameters": [
            {"internal_name": "bpm", "display_name": "BPM", "data_type": "float64", "default_value": 120.0, "min_value": 1.0},
        ],
    },
}


def _default_config() -> dict[str, Any]:
    return {
        "Chains": [
            {
                "ID": "stage",
                "Priority": 0,
                "TickRate": 100,
                "NumLamps": 8,
                "Output": {
                    "Type": "artnet",
                    "Args": {"ip": "127.0.0.1"},
                    "ChannelMapping": "RGB",
                    "NumChannelsPerLamp": 3,
                },
                "Effects": [
                    {"ID": "base", "Type": "solid_color", "Enabled": True, "Args": {"color": "#ff0000", "brightness": 200}},
                    {"ID": "pulse", "Type": "blink", "Enabled": False, "Args": {"divider": 2, "dutyCycle": 0.25}},
                ],
            }
        ],
        "events": {
            "drop": [{"type": "set_effect_enabled", "params": {"chain_id": "stage", "effect_id": "pulse", "enabled": True}}],
            "calm": [{"type": "set_bpm", "params": {"bpm": 90.0}}],
        },
    }


@dataclass
class DemoState:
    bpm: float = 120.0
    config: dict[str, Any] = field(default_factory=_default_config)
    last_event: str = "-"
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def config_payload(self) -> dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self.config)

    def save_config(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            raise ValueError("config must be an object")
        if not isinstance(payload.get("Chains"), list):
            raise ValueError("Chains must be a list")
        with self._lock:
            self.config = copy.deepcopy(payload)

    def set_bpm(self, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("bpm must be a number")
        with self._lock:
            self.bpm = float(value)
            return self.bpm

    def chain_views(self) -> list[dict[str, Any]] | None:
        with self._lock:
            chains = self.config.get("Chains") or []
            views = []
            for chain in chains:
                output = chain.get("Output") or {}
                views.append(
                    {
                        "ID": chain.get("ID"),
                        "Priority": chain.get("Priority"),
                        "TickRate": chain.get("TickRate"),
                        "NumLamps": chain.get("NumLamps"),
                        "Output": {
                            "Type": output.get("Type"),
                            "Args": output.get("Args"),
                            "ChannelMapping": output.get("ChannelMapping"),
                            "NumChannelsPerLamp": output.get("NumChannelsPerLamp"),
                        },
                        "Effects": [
                            {"Type": effect.get("Type"), "Args": effect.get("Args"), "Enabled": effect.get("Enabled", True)}
                            for effect in chain.get("Effects") or []
                        ],
                    }
                )
            # The real backend encodes an empty slice as null.
            return views or None

    def event_names(self) -> list[str]:
        with self._lock:
            return sorted(str(name) for name in (self.config.get("events") or {}))

    def trigger(self, event_name: str) -> None:
        with self._lock:
            if event_name not in (self.config.get("events") or {}):
                raise ValueError(f"unknown event: {event_name}")
            self.last_event = event_name


STATE = DemoState()


class LightingHandler(BaseHTTPRequestHandler):
    server_version = "MinimalLighting/1"

    def _send_json(self, payload: Any, status: int = 200) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_error_text(self, status: int, message: str) -> None:
        body = message.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _read_json(self) -> Any:
        length = int(self.headers.get("Content-Length") or 0)
        raw = self.rfile.read(length) if length > 0 else b""
        return json.loads(raw.decode("utf-8") or "null")

    def do_GET(self) -> None:
        if self.path == "/api/effects/schema":
            self._send_json(EFFECT_SCHEMAS)
        elif self.path == "/api/actions/schema":
            self._send_json(ACTION_SCHEMAS)
        elif self.path == "/api/config":
            self._send_json(STATE.config_payload())
        elif self.path == "/api/bpm":
            self._send_json({"bpm": STATE.bpm})
        elif self.path == "/api/chains":
            self._send_json(STATE.chain_views())
        elif self.path == "/api/events":
            self._send_json(STATE.event_names())
        else:
            self._send_error_text(404, f"not found: {self.path}")

    def do_POST(self) -> None:
        try:
            payload = self._read_json()
        except ValueError as ex:
            self._send_error_text(400, f"invalid JSON request: {ex}")
            return
        data = payload if isinstance(payload, dict) else {}

        try:
            if self.path == "/api/config":
                STATE.save_config(payload)
                self._send_json({"message": "Configuration saved."})
            elif self.path == "/api/bpm":
                self._send_json({"bpm": STATE.set_bpm(data.get("bpm"))})
            elif self.path == "/api/trigger":
                event_name = str(data.get("eventName") or "").strip()
                if not event_name:
                    raise ValueError("eventName is required")
                STATE.trigger(event_name)
                self._send_json({"status": "success", "message": "Event triggered"})
            else:
                self._send_error_text(404, f"not found: {self.path}")
        except ValueError as ex:
            self._send_error_text(400, str(ex))


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    host = str(args.host or "127.0.0.1").strip() or "127.0.0.1"
    port = int(args.port)
    if port <= 0 or port > 65535:
        raise SystemExit("port must be in range 1..65535")

    with ThreadingHTTPServer((host, port), LightingHandler) as server:
        print(f"minimal lighting server listening on http://{host}:{port}")
        print("Press Ctrl+C to stop.")
        try:
            server.serve_forever(poll_interval=0.3)
        except KeyboardInterrupt:
            print("\nStopping server...")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
