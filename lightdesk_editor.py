"""Config editor controller: load, edit wiring, save and reload."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from lightdesk_api import SCHEMA_KIND_ACTION, SCHEMA_KIND_EFFECT
from lightdesk_errors import FetchError, LightdeskError, SaveError
from lightdesk_model import ConfigModel
from lightdesk_schema import OUTPUT_SCHEMAS, SchemaRegistry
from lightdesk_sections import (
    IDENTITY_FIELDS,
    ChainSection,
    EditorTree,
    EventSection,
    PolymorphicSection,
    SectionPatch,
    reconcile,
    render_editor_tree,
)

logger = logging.getLogger(__name__)


class EditorView(Protocol):
    def show_tree(self, tree: EditorTree) -> None: ...

    def apply_patch(self, tree: EditorTree, chains: SectionPatch, events: SectionPatch) -> None: ...

    def replace_param_block(self, section: PolymorphicSection) -> None: ...

    def show_status(self, text: str) -> None: ...

    def show_error(self, text: str, *, fatal: bool = False) -> None: ...


@dataclass
class EditorSession:
    effect_schemas: SchemaRegistry
    action_schemas: SchemaRegistry
    config_payload: dict[str, Any]


def fetch_session(client: Any) -> EditorSession:
    """Fetch both registries and the config concurrently.

    Raises ``FetchError`` if any of them fails; editing without schemas is
    not possible.
    """
    with ThreadPoolExecutor(max_workers=3) as executor:
        effects = executor.submit(client.load_schemas, SCHEMA_KIND_EFFECT)
        actions = executor.submit(client.load_schemas, SCHEMA_KIND_ACTION)
        config = executor.submit(client.get_config)
        return EditorSession(
            effect_schemas=effects.result(),
            action_schemas=actions.result(),
            config_payload=config.result(),
        )


def _top_key(section_key: str) -> str:
    return section_key.split("/", 1)[0]


class ConfigEditorController:
    """Owns the session's config model and keeps the view in step with it."""

    def __init__(self, client: Any, view: EditorView, *, output_schemas: SchemaRegistry | None = None) -> None:
        self.client = client
        self.view = view
        self.output_schemas = output_schemas if output_schemas is not None else OUTPUT_SCHEMAS
        self.model: ConfigModel | None = None
        self.tree = EditorTree()
        self.saved_revision = 0
        self.ready = False

    @property
    def dirty(self) -> bool:
        return self.model is not None and self.model.revision != self.saved_revision

    # Load

    def fetch_session(self) -> EditorSession:
        return fetch_session(self.client)

    def install(self, session: EditorSession) -> None:
        try:
            model = ConfigModel.from_payload(
                session.config_payload,
                effect_schemas=session.effect_schemas,
                action_schemas=session.action_schemas,
            )
        except ValueError as ex:
            self.fail(FetchError(f"config is unusable: {ex}"))
            return
        self.model = model
        self.saved_revision = model.revision
        self.tree = render_editor_tree(model, self.output_schemas)
        self.ready = True
        self.view.show_tree(self.tree)
        logger.info(
            "editor loaded: %d chains, %d events, %d effect types, %d action types",
            len(model.chains),
            len(model.events),
            len(model.effect_schemas),
            len(model.action_schemas),
        )
        self.view.show_status(f"Loaded {len(model.chains)} chains and {len(model.events)} events.")

    def fail(self, error: FetchError) -> None:
        logger.error("editor load failed: %s", error)
        self.ready = False
        self.model = None
        self.tree = EditorTree()
        self.view.show_tree(self.tree)
        self.view.show_error(f"Failed to load editor: {error}", fatal=True)

    def init(self) -> bool:
        try:
            session = self.fetch_session()
        except FetchError as ex:
            self.fail(ex)
            return False
        self.install(session)
        return self.ready

    def begin_reload(self) -> None:
        if self.dirty:
            logger.info("reload discards unsaved edits")
            self.view.show_status("Reloading; unsaved edits discarded.")

    def reload(self) -> bool:
        self.begin_reload()
        return self.init()

    # Save

    def snapshot_for_save(self) -> tuple[dict[str, Any], int]:
        if self.model is None:
            raise SaveError("nothing to save: editor is not loaded")
        return self.model.to_payload(), self.model.revision

    def submit(self, payload: dict[str, Any]) -> str:
        """POST a snapshot. Safe off the UI thread; changes no controller state."""
        return self.client.save_config(payload)

    def save_succeeded(self, revision: int, message: str) -> None:
        self.saved_revision = revision
        logger.info("config saved: %s", message)
        self.view.show_status(message)

    def save(self) -> bool:
        try:
            payload, revision = self.snapshot_for_save()
            message = self.submit(payload)
        except SaveError as ex:
            self.save_failed(ex)
            return False
        self.save_succeeded(revision, message)
        return True

    def save_failed(self, error: SaveError) -> None:
        logger.warning("save failed: %s", error)
        self.view.show_error(f"Save failed: {error}")

    # Structural edits

    def _rerender(self) -> None:
        if self.model is None:
            return
        old = self.tree
        new = render_editor_tree(self.model, self.output_schemas)
        chains_patch = reconcile(old.chains, new.chains)
        events_patch = reconcile(old.events, new.events)
        # Unchanged sections keep their existing objects, which the view's widgets are bound to.
        rebuilt = set(chains_patch.added + chains_patch.changed + events_patch.added + events_patch.changed)
        new.chains = [item if item.key in rebuilt else old.chain(item.key) or item for item in new.chains]
        new.events = [item if item.key in rebuilt else old.event(item.key) or item for item in new.events]
        self.tree = new
        self.view.apply_patch(new, chains_patch, events_patch)

    def _structural(self, operation: Callable[[], Any]) -> Any:
        if self.model is None:
            self.view.show_error("Editor is not loaded.")
            return None
        try:
            result = operation()
        except LightdeskError as ex:
            self.view.show_error(str(ex))
            return None
        self._rerender()
        return result

    def add_chain(self) -> Any:
        return self._structural(lambda: self.model.add_chain())

    def remove_chain(self, chain_id: str) -> Any:
        return self._structural(lambda: self.model.remove_chain(chain_id))

    def add_effect(self, chain_id: str) -> Any:
        return self._structural(lambda: self.model.add_effect(chain_id))

    def remove_effect(self, chain_id: str, effect_id: str) -> Any:
        return self._structural(lambda: self.model.remove_effect(chain_id, effect_id))

    def add_event(self) -> Any:
        return self._structural(lambda: self.model.add_event())

    def remove_event(self, event_name: str) -> Any:
        return self._structural(lambda: self.model.remove_event(event_name))

    def add_action(self, event_name: str) -> Any:
        return self._structural(lambda: self.model.add_action_to_event(event_name))

    def remove_action(self, event_name: str, index: int) -> Any:
        return self._structural(lambda: self.model.remove_action(event_name, index))

    # Field edits

    def _resign(self, section_key: str) -> None:
        top = _top_key(section_key)
        section = self.tree.chain(top) or self.tree.event(top)
        if section is not None:
            section.resign()

    def _commit(self, section_key: str, name: str, commit: Any) -> str:
        """Run a field commit; returns the text for the field's validation label."""
        try:
            warning = commit(name)
        except LightdeskError as ex:
            self.view.show_status(f"Rejected: {ex}")
            return f"invalid: {ex}"
        if name in IDENTITY_FIELDS:
            # Render keys derive from identity, so the whole tree is re-keyed.
            self._rerender()
        else:
            self._resign(section_key)
        return warning or ""

    def commit_chain_field(self, section: ChainSection, name: str) -> str:
        return self._commit(section.key, name, section.commit_field)

    def commit_fixed(self, section: PolymorphicSection, name: str) -> str:
        return self._commit(section.key, name, section.commit_fixed)

    def commit_param(self, section: PolymorphicSection, name: str) -> str:
        return self._commit(section.key, name, section.commit_param)

    def commit_event_name(self, section: EventSection) -> str:
        if self.model is None:
            return ""
        model = self.model

        def rename(_: str) -> None:
            model.rename_event(section.event_name, section.name_field.extract_value())

        return self._commit(section.key, "name", rename)

    def change_type(self, section: PolymorphicSection, type_key: str) -> None:
        if type_key == section.selector.selected:
            return
        try:
            section.change_type(type_key)
        except LightdeskError as ex:
            self.view.show_error(str(ex))
            return
        self.view.replace_param_block(section)
        self._resign(section.key)
        logger.debug("%s retyped to %s", section.key, type_key)
