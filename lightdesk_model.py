"""Editable in-memory config model and its mutation operations.

The wire format uses capitalised keys for chains (``ID``, ``TickRate``...)
and lowercase keys for the event table (``events``, ``type``, ``params``).
Attributes here are snake_case; ``from_payload``/``to_payload`` is the only
place the two spellings meet. Keys the editor does not know about are carried
in ``extra`` and written back untouched.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from lightdesk_errors import DuplicateKeyError, MalformedInputError, NoSchemaError, NotFoundError
from lightdesk_schema import SchemaRegistry, first_type_key

CHAIN_FIELDS = {"id": "ID", "priority": "Priority", "tick_rate": "TickRate", "num_lamps": "NumLamps"}
EFFECT_FIELDS = {"id": "ID", "enabled": "Enabled", "group": "Group"}
OUTPUT_FIELDS = {"channel_mapping": "ChannelMapping", "num_channels_per_lamp": "NumChannelsPerLamp"}

DEFAULT_CHAIN_PRIORITY = 0
DEFAULT_CHAIN_TICK_RATE = 100
DEFAULT_CHAIN_NUM_LAMPS = 1


def _object(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def _int(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def _extra(payload: dict[str, Any], known: set[str]) -> dict[str, Any]:
    return {key: copy.deepcopy(value) for key, value in payload.items() if key not in known}


@dataclass
class Output:
    type: str = "artnet"
    args: dict[str, Any] = field(default_factory=dict)
    channel_mapping: str = "RGB"
    num_channels_per_lamp: int = 3
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def default(cls) -> "Output":
        return cls(type="artnet", args={"ip": "127.0.0.1"}, channel_mapping="RGB", num_channels_per_lamp=3)

    @classmethod
    def from_payload(cls, payload: Any) -> "Output":
        data = _object(payload)
        return cls(
            type=str(data.get("Type") or ""),
            args=copy.deepcopy(_object(data.get("Args"))),
            channel_mapping=str(data.get("ChannelMapping") or ""),
            num_channels_per_lamp=_int(data.get("NumChannelsPerLamp"), 0),
            extra=_extra(data, {"Type", "Args", "ChannelMapping", "NumChannelsPerLamp"}),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "Type": self.type,
            "Args": copy.deepcopy(self.args),
            "ChannelMapping": self.channel_mapping,
            "NumChannelsPerLamp": self.num_channels_per_lamp,
        }
        payload.update(copy.deepcopy(self.extra))
        return payload


@dataclass
class Effect:
    id: str
    type: str
    enabled: bool = True
    group: str = ""
    args: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "Effect":
        data = _object(payload)
        enabled = data.get("Enabled")
        return cls(
            id=str(data.get("ID") or ""),
            type=str(data.get("Type") or ""),
            # The backend treats a missing flag as enabled.
            enabled=True if enabled is None else bool(enabled),
            group=str(data.get("Group") or ""),
            args=copy.deepcopy(_object(data.get("Args"))),
            extra=_extra(data, {"ID", "Type", "Enabled", "Group", "Args"}),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ID": self.id,
            "Type": self.type,
            "Enabled": self.enabled,
            "Group": self.group,
            "Args": copy.deepcopy(self.args),
        }
        payload.update(copy.deepcopy(self.extra))
        return payload


@dataclass
class Chain:
    id: str
    priority: int = DEFAULT_CHAIN_PRIORITY
    tick_rate: int = DEFAULT_CHAIN_TICK_RATE
    num_lamps: int = DEFAULT_CHAIN_NUM_LAMPS
    output: Output = field(default_factory=Output.default)
    effects: list[Effect] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "Chain":
        data = _object(payload)
        effects_raw = data.get("Effects")
        effects = [Effect.from_payload(item) for item in effects_raw] if isinstance(effects_raw, list) else []
        return cls(
            id=str(data.get("ID") or ""),
            priority=_int(data.get("Priority"), DEFAULT_CHAIN_PRIORITY),
            tick_rate=_int(data.get("TickRate"), DEFAULT_CHAIN_TICK_RATE),
            num_lamps=_int(data.get("NumLamps"), DEFAULT_CHAIN_NUM_LAMPS),
            output=Output.from_payload(data.get("Output")),
            effects=effects,
            extra=_extra(data, {"ID", "Priority", "TickRate", "NumLamps", "Output", "Effects"}),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ID": self.id,
            "Priority": self.priority,
            "TickRate": self.tick_rate,
            "NumLamps": self.num_lamps,
            "Output": self.output.to_payload(),
            "Effects": [effect.to_payload() for effect in self.effects],
        }
        payload.update(copy.deepcopy(self.extra))
        return payload


@dataclass
class Action:
    type: str
    params: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "Action":
        data = _object(payload)
        return cls(
            type=str(data.get("type") or ""),
            params=copy.deepcopy(_object(data.get("params"))),
            extra=_extra(data, {"type", "params"}),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "params": copy.deepcopy(self.params)}
        payload.update(copy.deepcopy(self.extra))
        return payload


@dataclass
class Config:
    chains: list[Chain] = field(default_factory=list)
    events: dict[str, list[Action]] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "Config":
        if not isinstance(payload, dict):
            raise ValueError("config payload must be an object")
        chains_raw = payload.get("Chains")
        events_raw = payload.get("events")
        events: dict[str, list[Action]] = {}
        if isinstance(events_raw, dict):
            for name_raw, actions_raw in events_raw.items():
                name = str(name_raw)
                actions = actions_raw if isinstance(actions_raw, list) else []
                events[name] = [Action.from_payload(item) for item in actions]
        return cls(
            chains=[Chain.from_payload(item) for item in chains_raw] if isinstance(chains_raw, list) else [],
            events=events,
            extra=_extra(payload, {"Chains", "events"}),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "Chains": [chain.to_payload() for chain in self.chains],
            "events": {name: [action.to_payload() for action in actions] for name, actions in self.events.items()},
        }
        payload.update(copy.deepcopy(self.extra))
        return payload


class ConfigModel:
    """The single editable config of an editing session.

    Every mutation bumps ``revision`` so the controller can tell whether
    there are unsaved edits.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        effect_schemas: SchemaRegistry | None = None,
        action_schemas: SchemaRegistry | None = None,
    ) -> None:
        self.config = config if config is not None else Config()
        self.effect_schemas: SchemaRegistry = dict(effect_schemas or {})
        self.action_schemas: SchemaRegistry = dict(action_schemas or {})
        self.revision = 0

    @classmethod
    def from_payload(
        cls,
        payload: Any,
        *,
        effect_schemas: SchemaRegistry | None = None,
        action_schemas: SchemaRegistry | None = None,
    ) -> "ConfigModel":
        return cls(Config.from_payload(payload), effect_schemas=effect_schemas, action_schemas=action_schemas)

    def to_payload(self) -> dict[str, Any]:
        return self.config.to_payload()

    def _touch(self) -> None:
        self.revision += 1

    # Lookups

    @property
    def chains(self) -> list[Chain]:
        return self.config.chains

    @property
    def events(self) -> dict[str, list[Action]]:
        return self.config.events

    def chain(self, chain_id: str) -> Chain:
        for chain in self.config.chains:
            if chain.id == chain_id:
                return chain
        raise NotFoundError(f"chain {chain_id!r} not found")

    def effect(self, chain_id: str, effect_id: str) -> Effect:
        chain = self.chain(chain_id)
        for effect in chain.effects:
            if effect.id == effect_id:
                return effect
        raise NotFoundError(f"effect {effect_id!r} not found in chain {chain_id!r}")

    def actions(self, event_name: str) -> list[Action]:
        actions = self.config.events.get(event_name)
        if actions is None:
            raise NotFoundError(f"event {event_name!r} not found")
        return actions

    def action(self, event_name: str, index: int) -> Action:
        actions = self.actions(event_name)
        if index < 0 or index >= len(actions):
            raise NotFoundError(f"action {index} not found in event {event_name!r}")
        return actions[index]

    # Chains

    def add_chain(self) -> Chain:
        # Ids are not checked for collisions; the backend rejects duplicates on save.
        chain = Chain(id=f"newChain{len(self.config.chains) + 1}")
        self.config.chains.append(chain)
        self._touch()
        return chain

    def remove_chain(self, chain_id: str) -> Chain:
        chain = self.chain(chain_id)
        self.config.chains.remove(chain)
        self._touch()
        return chain

    def update_chain_field(self, chain_id: str, name: str, value: Any) -> None:
        if name not in CHAIN_FIELDS:
            raise ValueError(f"unknown chain field: {name}")
        chain = self.chain(chain_id)
        setattr(chain, name, str(value) if name == "id" else value)
        self._touch()

    # Outputs

    def update_output_field(self, chain_id: str, name: str, value: Any) -> None:
        if name not in OUTPUT_FIELDS:
            raise ValueError(f"unknown output field: {name}")
        setattr(self.chain(chain_id).output, name, value)
        self._touch()

    def update_output_arg(self, chain_id: str, name: str, value: Any) -> None:
        self.chain(chain_id).output.args[name] = value
        self._touch()

    def change_output_type(self, chain_id: str, type_key: str) -> None:
        output = self.chain(chain_id).output
        output.type = type_key
        output.args = {}
        self._touch()

    # Effects

    def add_effect(self, chain_id: str) -> Effect:
        chain = self.chain(chain_id)
        type_key = first_type_key(self.effect_schemas)
        if type_key is None:
            raise NoSchemaError("no effect types are registered")
        effect = Effect(id=f"newEffect{len(chain.effects) + 1}", type=type_key, enabled=True, group="", args={})
        chain.effects.append(effect)
        self._touch()
        return effect

    def remove_effect(self, chain_id: str, effect_id: str) -> Effect:
        chain = self.chain(chain_id)
        effect = self.effect(chain_id, effect_id)
        chain.effects.remove(effect)
        self._touch()
        return effect

    def update_effect_field(self, chain_id: str, effect_id: str, name: str, value: Any) -> None:
        if name not in EFFECT_FIELDS:
            raise ValueError(f"unknown effect field: {name}")
        effect = self.effect(chain_id, effect_id)
        if name == "enabled":
            value = bool(value)
        elif name in {"id", "group"}:
            value = str(value)
        setattr(effect, name, value)
        self._touch()

    def update_effect_arg(self, chain_id: str, effect_id: str, name: str, value: Any) -> None:
        self.effect(chain_id, effect_id).args[name] = value
        self._touch()

    def change_effect_type(self, chain_id: str, effect_id: str, type_key: str) -> None:
        # Lossy reset: args are cleared even when the new type shares names.
        effect = self.effect(chain_id, effect_id)
        effect.type = type_key
        effect.args = {}
        self._touch()

    # Events and actions

    def add_event(self) -> str:
        # Skip names left occupied after a removal.
        number = len(self.config.events) + 1
        while f"newEvent{number}" in self.config.events:
            number += 1
        name = f"newEvent{number}"
        self.config.events[name] = []
        self._touch()
        return name

    def remove_event(self, event_name: str) -> list[Action]:
        actions = self.actions(event_name)
        del self.config.events[event_name]
        self._touch()
        return actions

    def rename_event(self, old_name: str, new_name: str) -> None:
        actions = self.actions(old_name)
        new_name = str(new_name).strip()
        if not new_name:
            raise MalformedInputError("Event", "name must not be empty")
        if new_name == old_name:
            return
        if new_name in self.config.events:
            raise DuplicateKeyError(f"event {new_name!r} already exists")
        # Rebuild to keep the table's ordering stable.
        self.config.events = {
            (new_name if name == old_name else name): (actions if name == old_name else items)
            for name, items in self.config.events.items()
        }
        self._touch()

    def add_action_to_event(self, event_name: str) -> Action:
        actions = self.actions(event_name)
        type_key = first_type_key(self.action_schemas)
        if type_key is None:
            raise NoSchemaError("no action types are registered")
        action = Action(type=type_key, params={})
        actions.append(action)
        self._touch()
        return action

    def remove_action(self, event_name: str, index: int) -> Action:
        action = self.action(event_name, index)
        del self.actions(event_name)[index]
        self._touch()
        return action

    def update_action_param(self, event_name: str, index: int, name: str, value: Any) -> None:
        self.action(event_name, index).params[name] = value
        self._touch()

    def change_action_type(self, event_name: str, index: int, type_key: str) -> None:
        action = self.action(event_name, index)
        action.type = type_key
        action.params = {}
        self._touch()
