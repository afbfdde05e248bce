"""Render tree for the config editor.

``render_editor_tree`` is a pure function of the config model and the schema
registries. Every polymorphic entity (effect, output, action) becomes a
``PolymorphicSection``: fixed fields, a type selector and a parameter block
built from the selected type's schema. Sections carry closures that write
edits back into the model; the Tk layer only materialises and reconciles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from lightdesk_errors import MalformedInputError
from lightdesk_fields import FieldWidget, is_invalid_number, render_field
from lightdesk_live import snapshot_signature
from lightdesk_model import Action, Chain, ConfigModel, Effect
from lightdesk_schema import OUTPUT_SCHEMAS, ParameterSchema, SchemaRegistry, selector_options

SECTION_STABLE = "stable"
SECTION_RETYPING = "retyping"

KIND_EFFECT = "effect"
KIND_OUTPUT = "output"
KIND_ACTION = "action"

CHANNEL_MAPPINGS = ("RGB", "RGBW")

_CHAIN_FIELD_SCHEMAS = (
    ParameterSchema(name="id", display_name="ID", data_type="string"),
    ParameterSchema(name="priority", display_name="Priority", data_type="integer"),
    ParameterSchema(name="tick_rate", display_name="Tick Rate", data_type="integer", minimum=1),
    ParameterSchema(name="num_lamps", display_name="Num Lamps", data_type="integer", minimum=1),
)
_OUTPUT_FIELD_SCHEMAS = (
    ParameterSchema(name="channel_mapping", display_name="Channel Mapping", data_type="string", options=CHANNEL_MAPPINGS),
    ParameterSchema(name="num_channels_per_lamp", display_name="Channels per Lamp", data_type="integer", minimum=1),
)
_EFFECT_FIELD_SCHEMAS = (
    ParameterSchema(name="id", display_name="ID", data_type="string"),
    ParameterSchema(name="enabled", display_name="Enabled", data_type="boolean"),
    ParameterSchema(name="group", display_name="Group", data_type="string"),
)
_EVENT_NAME_SCHEMA = ParameterSchema(name="name", display_name="Event", data_type="string")

IDENTITY_FIELDS = frozenset({"id", "name"})


def chain_key(chain_id: str) -> str:
    return f"chain:{chain_id}"


def event_key(event_name: str) -> str:
    return f"event:{event_name}"


@dataclass
class TypeSelector:
    options: list[tuple[str, str]]
    selected: str

    @property
    def labels(self) -> list[str]:
        return [label for _, label in self.options]

    @property
    def selected_label(self) -> str:
        for key, label in self.options:
            if key == self.selected:
                return label
        return self.selected

    def key_for_label(self, label: str) -> str | None:
        for key, candidate in self.options:
            if candidate == label:
                return key
        return None


@dataclass
class ParamBlock:
    type_key: str
    fields: list[FieldWidget] = field(default_factory=list)
    empty_text: str = ""

    def field_named(self, name: str) -> FieldWidget:
        for item in self.fields:
            if item.name == name:
                return item
        raise KeyError(name)


def build_param_block(registry: SchemaRegistry, type_key: str, values: dict[str, Any]) -> ParamBlock:
    schema = registry.get(type_key)
    if schema is None:
        return ParamBlock(type_key=type_key, empty_text=f"Unknown type {type_key!r}; no parameters.")
    if not schema.parameters:
        return ParamBlock(type_key=type_key, empty_text="No parameters for this type.")
    fields = [
        render_field(param, values[param.name] if param.name in values else param.default())
        for param in schema.parameters
    ]
    return ParamBlock(type_key=type_key, fields=fields)


def _build_selector(registry: SchemaRegistry, type_key: str) -> TypeSelector:
    options = selector_options(registry)
    if type_key not in registry:
        options.append((type_key, f"{type_key} (unknown)"))
    return TypeSelector(options=options, selected=type_key)


def commit_field(item: FieldWidget, write: Callable[[str, Any], None]) -> str | None:
    """Extract a field's value and write it; returns a soft-bound warning.

    Raises ``MalformedInputError`` when the text does not parse. Nothing is
    written in that case.
    """
    value = item.extract_value()
    if is_invalid_number(value):
        detail = "must be a whole number" if item.data_type == "integer" else "must be a number"
        raise MalformedInputError(item.label or item.name, detail)
    write(item.name, value)
    return item.bounds_warning(value)


def _field(fields: list[FieldWidget], name: str) -> FieldWidget:
    for item in fields:
        if item.name == name:
            return item
    raise KeyError(name)


class PolymorphicSection:
    """One effect, output or action: fixed fields, type selector, parameters.

    Changing the type runs the retype protocol: the model clears the entity's
    arguments, the old parameter block is dropped whole and a new one is
    built against the new schema.
    """

    def __init__(
        self,
        *,
        kind: str,
        key: str,
        title: str,
        registry: SchemaRegistry,
        read: Callable[[], tuple[str, dict[str, Any]]],
        retype: Callable[[str], None],
        write_param: Callable[[str, Any], None],
        fixed_fields: list[FieldWidget] | None = None,
        write_fixed: Callable[[str, Any], None] | None = None,
        ident: Any = None,
    ) -> None:
        self.kind = kind
        self.ident = ident
        self.key = key
        self.title = title
        self.registry = registry
        self.fixed_fields = list(fixed_fields or [])
        self.state = SECTION_STABLE
        self._read = read
        self._retype = retype
        self._write_param = write_param
        self._write_fixed = write_fixed
        type_key, values = read()
        self.selector = _build_selector(registry, type_key)
        self.params: ParamBlock | None = build_param_block(registry, type_key, values)

    def change_type(self, type_key: str) -> ParamBlock:
        self.state = SECTION_RETYPING
        try:
            self._retype(type_key)
            self.params = None
            current_type, values = self._read()
            self.selector = _build_selector(self.registry, current_type)
            self.params = build_param_block(self.registry, current_type, values)
        finally:
            self.state = SECTION_STABLE
        return self.params

    def commit_param(self, name: str) -> str | None:
        if self.params is None:
            raise KeyError(name)
        return commit_field(self.params.field_named(name), self._write_param)

    def commit_fixed(self, name: str) -> str | None:
        if self._write_fixed is None:
            raise KeyError(name)
        return commit_field(_field(self.fixed_fields, name), self._write_fixed)


@dataclass
class ChainSection:
    key: str
    chain_id: str
    fields: list[FieldWidget]
    output: PolymorphicSection
    effects: list[PolymorphicSection]
    signature: Any
    write_field: Callable[[str, Any], None]
    payload: Callable[[], Any]

    def commit_field(self, name: str) -> str | None:
        return commit_field(_field(self.fields, name), self.write_field)

    def resign(self) -> None:
        self.signature = snapshot_signature(self.payload())


@dataclass
class EventSection:
    key: str
    event_name: str
    name_field: FieldWidget
    actions: list[PolymorphicSection]
    signature: Any
    payload: Callable[[], Any]

    def resign(self) -> None:
        self.signature = snapshot_signature(self.payload())


@dataclass
class EditorTree:
    chains: list[ChainSection] = field(default_factory=list)
    events: list[EventSection] = field(default_factory=list)

    def chain(self, key: str) -> ChainSection | None:
        return next((item for item in self.chains if item.key == key), None)

    def event(self, key: str) -> EventSection | None:
        return next((item for item in self.events if item.key == key), None)


def render_effect_section(model: ConfigModel, chain_id: str, effect: Effect) -> PolymorphicSection:
    effect_id = effect.id

    def read() -> tuple[str, dict[str, Any]]:
        current = model.effect(chain_id, effect_id)
        return current.type, current.args

    fixed = [
        render_field(_EFFECT_FIELD_SCHEMAS[0], effect.id),
        render_field(_EFFECT_FIELD_SCHEMAS[1], effect.enabled),
        render_field(_EFFECT_FIELD_SCHEMAS[2], effect.group),
    ]
    return PolymorphicSection(
        kind=KIND_EFFECT,
        key=f"{chain_key(chain_id)}/effect:{effect_id}",
        title=f"Effect: {effect_id or 'New Effect'}",
        registry=model.effect_schemas,
        read=read,
        retype=lambda type_key: model.change_effect_type(chain_id, effect_id, type_key),
        write_param=lambda name, value: model.update_effect_arg(chain_id, effect_id, name, value),
        fixed_fields=fixed,
        write_fixed=lambda name, value: model.update_effect_field(chain_id, effect_id, name, value),
        ident=effect_id,
    )


def render_output_section(model: ConfigModel, chain_id: str, registry: SchemaRegistry | None = None) -> PolymorphicSection:
    def read() -> tuple[str, dict[str, Any]]:
        output = model.chain(chain_id).output
        return output.type, output.args

    return PolymorphicSection(
        kind=KIND_OUTPUT,
        key=f"{chain_key(chain_id)}/output",
        title="Output",
        registry=registry if registry is not None else OUTPUT_SCHEMAS,
        read=read,
        retype=lambda type_key: model.change_output_type(chain_id, type_key),
        write_param=lambda name, value: model.update_output_arg(chain_id, name, value),
        ident=chain_id,
    )


def render_chain_section(model: ConfigModel, chain: Chain, output_schemas: SchemaRegistry | None = None) -> ChainSection:
    chain_id = chain.id
    fields = [
        render_field(_CHAIN_FIELD_SCHEMAS[0], chain.id),
        render_field(_CHAIN_FIELD_SCHEMAS[1], chain.priority),
        render_field(_CHAIN_FIELD_SCHEMAS[2], chain.tick_rate),
        render_field(_CHAIN_FIELD_SCHEMAS[3], chain.num_lamps),
        render_field(_OUTPUT_FIELD_SCHEMAS[0], chain.output.channel_mapping),
        render_field(_OUTPUT_FIELD_SCHEMAS[1], chain.output.num_channels_per_lamp),
    ]

    def write_field(name: str, value: Any) -> None:
        if name in {"channel_mapping", "num_channels_per_lamp"}:
            model.update_output_field(chain_id, name, value)
            return
        model.update_chain_field(chain_id, name, value)

    def payload() -> Any:
        return model.chain(chain_id).to_payload()

    return ChainSection(
        key=chain_key(chain_id),
        chain_id=chain_id,
        fields=fields,
        output=render_output_section(model, chain_id, output_schemas),
        effects=[render_effect_section(model, chain_id, effect) for effect in chain.effects],
        signature=snapshot_signature(chain.to_payload()),
        write_field=write_field,
        payload=payload,
    )


def render_action_section(model: ConfigModel, event_name: str, index: int, action: Action) -> PolymorphicSection:
    # The index is a render key for this pass only; removals shift it.
    def read() -> tuple[str, dict[str, Any]]:
        current = model.action(event_name, index)
        return current.type, current.params

    return PolymorphicSection(
        kind=KIND_ACTION,
        key=f"{event_key(event_name)}/action:{index}",
        title=f"Action {index + 1}",
        registry=model.action_schemas,
        read=read,
        retype=lambda type_key: model.change_action_type(event_name, index, type_key),
        write_param=lambda name, value: model.update_action_param(event_name, index, name, value),
        ident=index,
    )


def render_event_section(model: ConfigModel, event_name: str) -> EventSection:
    actions = model.actions(event_name)

    def payload() -> Any:
        return [item.to_payload() for item in model.actions(event_name)]

    return EventSection(
        key=event_key(event_name),
        event_name=event_name,
        name_field=render_field(_EVENT_NAME_SCHEMA, event_name),
        actions=[render_action_section(model, event_name, index, action) for index, action in enumerate(actions)],
        signature=snapshot_signature([item.to_payload() for item in actions]),
        payload=payload,
    )


def render_editor_tree(model: ConfigModel, output_schemas: SchemaRegistry | None = None) -> EditorTree:
    return EditorTree(
        chains=[render_chain_section(model, chain, output_schemas) for chain in model.chains],
        events=[render_event_section(model, name) for name in model.events],
    )


@dataclass
class SectionPatch:
    order: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)
    reordered: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed or self.reordered)


def reconcile(old_sections: list[Any], new_sections: list[Any]) -> SectionPatch:
    """Keyed diff of top-level sections by render key and signature."""
    old_by_key = {item.key: item for item in old_sections}
    new_keys = [item.key for item in new_sections]
    patch = SectionPatch(order=new_keys)
    for item in new_sections:
        previous = old_by_key.get(item.key)
        if previous is None:
            patch.added.append(item.key)
        elif previous.signature != item.signature:
            patch.changed.append(item.key)
    new_key_set = set(new_keys)
    patch.removed = [key for key in old_by_key if key not in new_key_set]
    surviving_old = [item.key for item in old_sections if item.key in new_key_set]
    surviving_new = [key for key in new_keys if key in old_by_key]
    patch.reordered = surviving_old != surviving_new
    return patch
