"""Type schema normalization for effect, action and output registries."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

DATA_TYPE_ALIASES = {
    "string": "string",
    "str": "string",
    "text": "string",
    "int": "integer",
    "integer": "integer",
    "float": "float",
    "float64": "float",
    "number": "float",
    "bool": "boolean",
    "boolean": "boolean",
    "object": "object",
}

DATA_TYPES = ("string", "integer", "float", "boolean", "object")


@dataclass(frozen=True)
class ParameterSchema:
    name: str
    display_name: str
    data_type: str
    default_value: Any = None
    minimum: float | None = None
    maximum: float | None = None
    description: str = ""
    options: tuple[str, ...] = ()

    def default(self) -> Any:
        # Object defaults are shared between renders; hand out copies.
        return copy.deepcopy(self.default_value)


@dataclass(frozen=True)
class TypeSchema:
    type_key: str
    human_readable_name: str = ""
    parameters: tuple[ParameterSchema, ...] = field(default_factory=tuple)

    @property
    def label(self) -> str:
        return self.human_readable_name or self.type_key

    def parameter(self, name: str) -> ParameterSchema | None:
        for param in self.parameters:
            if param.name == name:
                return param
        return None


SchemaRegistry = dict[str, TypeSchema]


def normalize_data_type(value: Any) -> str:
    text = str(value or "").strip().lower()
    return DATA_TYPE_ALIASES.get(text, "object")


def _first_present(item: dict[str, Any], *keys: str) -> Any | None:
    for key in keys:
        if key in item and item[key] is not None:
            return item[key]
    return None


def _bound(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _options(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item) for item in value if str(item).strip())


def _parameter_from_payload(name: str, item: dict[str, Any]) -> ParameterSchema:
    display_name = str(_first_present(item, "display_name", "displayName") or "").strip()
    return ParameterSchema(
        name=name,
        display_name=display_name or name,
        data_type=normalize_data_type(_first_present(item, "data_type", "dataType", "type")),
        default_value=_first_present(item, "default_value", "defaultValue", "default"),
        minimum=_bound(_first_present(item, "min_value", "minValue", "min")),
        maximum=_bound(_first_present(item, "max_value", "maxValue", "max")),
        description=str(item.get("description") or "").strip(),
        options=_options(item.get("options")),
    )


def normalize_effect_schemas(payload: Any) -> SchemaRegistry:
    """Build the effect registry from ``GET /api/effects/schema``.

    Shape: ``{typeKey: {"args": {paramName: {"type": ..., ...}}}}``. Argument
    order follows the order of the JSON object.
    """
    if not isinstance(payload, dict):
        raise ValueError("effect schema payload must be an object")

    registry: SchemaRegistry = {}
    for type_key_raw, entry in payload.items():
        type_key = str(type_key_raw or "").strip()
        if not type_key:
            continue
        entry = entry if isinstance(entry, dict) else {}
        args_raw = entry.get("args")
        parameters: list[ParameterSchema] = []
        if isinstance(args_raw, dict):
            for arg_name_raw, arg_spec in args_raw.items():
                arg_name = str(arg_name_raw or "").strip()
                if not arg_name:
                    continue
                parameters.append(_parameter_from_payload(arg_name, arg_spec if isinstance(arg_spec, dict) else {}))
        registry[type_key] = TypeSchema(
            type_key=type_key,
            human_readable_name=str(_first_present(entry, "human_readable_name", "humanReadableName") or "").strip(),
            parameters=tuple(parameters),
        )
    return registry


def normalize_action_schemas(payload: Any) -> SchemaRegistry:
    """Build the action registry from ``GET /api/actions/schema``.

    Shape: ``{typeKey: {"human_readable_name"?, "Parameters": [{"internal_name", ...}]}}``.
    """
    if not isinstance(payload, dict):
        raise ValueError("action schema payload must be an object")

    registry: SchemaRegistry = {}
    for type_key_raw, entry in payload.items():
        type_key = str(type_key_raw or "").strip()
        if not type_key:
            continue
        entry = entry if isinstance(entry, dict) else {}
        params_raw = _first_present(entry, "Parameters", "parameters")
        parameters: list[ParameterSchema] = []
        if isinstance(params_raw, list):
            for item in params_raw:
                if not isinstance(item, dict):
                    continue
                name = str(_first_present(item, "internal_name", "internalName", "name") or "").strip()
                if not name:
                    continue
                parameters.append(_parameter_from_payload(name, item))
        registry[type_key] = TypeSchema(
            type_key=type_key,
            human_readable_name=str(_first_present(entry, "human_readable_name", "humanReadableName") or "").strip(),
            parameters=tuple(parameters),
        )
    return registry


# Outputs have no schema endpoint; these mirror the backend's output kinds.
OUTPUT_SCHEMAS: SchemaRegistry = {
    "artnet": TypeSchema(
        type_key="artnet",
        human_readable_name="Art-Net",
        parameters=(ParameterSchema(name="ip", display_name="Node IP", data_type="string", default_value="127.0.0.1"),),
    ),
    "ddp": TypeSchema(
        type_key="ddp",
        human_readable_name="DDP",
        parameters=(ParameterSchema(name="ip", display_name="Controller IP", data_type="string", default_value="127.0.0.1"),),
    ),
    "govee": TypeSchema(
        type_key="govee",
        human_readable_name="Govee LAN",
        parameters=(ParameterSchema(name="devices", display_name="Devices", data_type="object", default_value=[]),),
    ),
}


def selector_options(registry: SchemaRegistry) -> list[tuple[str, str]]:
    return [(type_key, schema.label) for type_key, schema in registry.items()]


def first_type_key(registry: SchemaRegistry) -> str | None:
    for type_key in registry:
        return type_key
    return None
