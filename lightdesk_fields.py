"""Schema-driven field widgets and the typed values read back from them.

A field is a plain description of an input control plus the user's current
edit state (``raw`` text or ``checked``). The Tk layer binds its variables to
that state; ``extract_value`` turns it back into the typed value written
into the config model.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Callable

from lightdesk_errors import MalformedInputError
from lightdesk_schema import ParameterSchema

FIELD_TEXT = "text"
FIELD_NUMBER = "number"
FIELD_TOGGLE = "toggle"
FIELD_CHOICE = "choice"
FIELD_JSON = "json"


@dataclass
class FieldWidget:
    name: str
    label: str
    kind: str
    data_type: str
    raw: str = ""
    checked: bool = False
    minimum: float | None = None
    maximum: float | None = None
    options: tuple[str, ...] = ()
    description: str = ""

    def extract_value(self) -> Any:
        return _EXTRACTORS[self.kind](self)

    def bounds_warning(self, value: Any) -> str | None:
        if self.kind != FIELD_NUMBER or not isinstance(value, (int, float)) or isinstance(value, bool):
            return None
        if isinstance(value, float) and math.isnan(value):
            return None
        if self.minimum is not None and value < self.minimum:
            return f"below minimum {render_number(self.minimum)}"
        if self.maximum is not None and value > self.maximum:
            return f"above maximum {render_number(self.maximum)}"
        return None


def render_number(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        # repr keeps the ".0" so the value reads back as a float.
        return repr(value)
    return str(value).strip()


def _render_text(param: ParameterSchema, value: Any) -> FieldWidget:
    raw = "" if value is None else str(value)
    if param.options:
        return FieldWidget(
            name=param.name,
            label=param.display_name,
            kind=FIELD_CHOICE,
            data_type=param.data_type,
            raw=raw,
            options=param.options,
            description=param.description,
        )
    return FieldWidget(
        name=param.name,
        label=param.display_name,
        kind=FIELD_TEXT,
        data_type=param.data_type,
        raw=raw,
        description=param.description,
    )


def _render_number(param: ParameterSchema, value: Any) -> FieldWidget:
    return FieldWidget(
        name=param.name,
        label=param.display_name,
        kind=FIELD_NUMBER,
        data_type=param.data_type,
        raw=render_number(value),
        minimum=param.minimum,
        maximum=param.maximum,
        description=param.description,
    )


def _render_toggle(param: ParameterSchema, value: Any) -> FieldWidget:
    return FieldWidget(
        name=param.name,
        label=param.display_name,
        kind=FIELD_TOGGLE,
        data_type=param.data_type,
        checked=bool(value),
        description=param.description,
    )


def _render_json(param: ParameterSchema, value: Any) -> FieldWidget:
    return FieldWidget(
        name=param.name,
        label=param.display_name,
        kind=FIELD_JSON,
        data_type=param.data_type,
        raw=json.dumps(value, indent=2, ensure_ascii=False),
        description=param.description,
    )


def _extract_text(field: FieldWidget) -> Any:
    return field.raw


def _extract_number(field: FieldWidget) -> Any:
    # NaN marks text that is not a number; the commit step rejects it.
    text = field.raw.strip()
    if field.data_type == "integer":
        try:
            return int(text)
        except ValueError:
            pass
    try:
        number = float(text)
    except ValueError:
        return math.nan
    if math.isinf(number):
        return math.nan
    if field.data_type == "integer":
        if not number.is_integer():
            return math.nan
        return int(number)
    return number


def _extract_toggle(field: FieldWidget) -> Any:
    return bool(field.checked)


def _extract_json(field: FieldWidget) -> Any:
    label = field.label or field.name

    def reject_constant(name: str) -> Any:
        raise MalformedInputError(label, f"invalid JSON ({name} is not allowed)")

    try:
        return json.loads(field.raw, parse_constant=reject_constant)
    except json.JSONDecodeError as ex:
        raise MalformedInputError(label, f"invalid JSON ({ex.msg} at line {ex.lineno})") from ex


_EXTRACTORS: dict[str, Callable[[FieldWidget], Any]] = {
    FIELD_TEXT: _extract_text,
    FIELD_CHOICE: _extract_text,
    FIELD_NUMBER: _extract_number,
    FIELD_TOGGLE: _extract_toggle,
    FIELD_JSON: _extract_json,
}

FIELD_RENDERERS: dict[str, Callable[[ParameterSchema, Any], FieldWidget]] = {
    "string": _render_text,
    "integer": _render_number,
    "float": _render_number,
    "boolean": _render_toggle,
    "object": _render_json,
}


def render_field(param: ParameterSchema, value: Any) -> FieldWidget:
    renderer = FIELD_RENDERERS.get(param.data_type, _render_json)
    return renderer(param, value)


def is_invalid_number(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)
