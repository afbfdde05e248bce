#!/usr/bin/env python3
"""Desktop editor and live view for a lighting-control backend."""

from __future__ import annotations

import argparse
import logging
import threading
import tkinter as tk
from pathlib import Path
from tkinter import messagebox, ttk
from typing import Any, Callable

from lightdesk_api import LightdeskClient
from lightdesk_editor import ConfigEditorController, fetch_session
from lightdesk_errors import FetchError, SaveError
from lightdesk_fields import FIELD_CHOICE, FIELD_JSON, FIELD_NUMBER, FIELD_TOGGLE, FieldWidget
from lightdesk_live import (
    RESOURCE_CHAINS,
    RESOURCE_EVENTS,
    RESOURCE_TEMPO,
    LivePoller,
    describe_chain_view,
    format_tempo,
)
from lightdesk_model import ConfigModel
from lightdesk_sections import (
    ChainSection,
    EditorTree,
    EventSection,
    PolymorphicSection,
    SectionPatch,
)
from lightdesk_settings import Settings, load_settings

logger = logging.getLogger("lightdesk")

SPIN_LIMIT = 1_000_000
EVENT_BUTTON_COLUMNS = 4


def _scroll_area(parent: ttk.Frame) -> ttk.Frame:
    wrap = ttk.Frame(parent)
    wrap.pack(fill=tk.BOTH, expand=True, padx=4, pady=(2, 4))
    canvas = tk.Canvas(wrap, highlightthickness=0)
    canvas.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)
    vertical_scroll = ttk.Scrollbar(wrap, orient=tk.VERTICAL, command=canvas.yview)
    vertical_scroll.pack(side=tk.RIGHT, fill=tk.Y)
    canvas.configure(yscrollcommand=vertical_scroll.set)

    inner = ttk.Frame(canvas)
    window = canvas.create_window((0, 0), window=inner, anchor="nw")

    def sync_scroll_region(_: Any = None) -> None:
        canvas.configure(scrollregion=canvas.bbox("all"))

    def sync_width(event: Any) -> None:
        canvas.itemconfigure(window, width=event.width)

    inner.bind("<Configure>", sync_scroll_region)
    canvas.bind("<Configure>", sync_width)
    return inner


class TkEditorView:
    """Materialises the editor render tree into ttk widgets.

    Every method runs on the Tk thread. Top-level sections are keyed by their
    render key; a patch rebuilds only the added and changed ones. Widget
    callbacks go to the app's controller, built right after the view.
    """

    def __init__(self, app: "LightdeskApp", chains_frame: ttk.Frame, events_frame: ttk.Frame) -> None:
        self.app = app
        self.chains_frame = chains_frame
        self.events_frame = events_frame
        self.section_frames: dict[str, tk.Widget] = {}
        self.param_frames: dict[str, ttk.Frame] = {}
        self.selectors: dict[str, ttk.Combobox] = {}

    # EditorView

    def show_tree(self, tree: EditorTree) -> None:
        for key in list(self.section_frames):
            self._drop_section(key)
        for section in tree.chains:
            self.section_frames[section.key] = self._build_chain(section)
        for section in tree.events:
            self.section_frames[section.key] = self._build_event(section)
        self._repack([item.key for item in tree.chains])
        self._repack([item.key for item in tree.events])

    def apply_patch(self, tree: EditorTree, chains: SectionPatch, events: SectionPatch) -> None:
        for sections, patch, build in (
            (tree.chains, chains, self._build_chain),
            (tree.events, events, self._build_event),
        ):
            if patch.is_empty:
                continue
            for key in patch.removed:
                self._drop_section(key)
            by_key = {item.key: item for item in sections}
            for key in patch.added + patch.changed:
                self._drop_section(key)
                self.section_frames[key] = build(by_key[key])
            self._repack(patch.order)

    def replace_param_block(self, section: PolymorphicSection) -> None:
        selector = self.selectors.get(section.key)
        if selector is not None:
            selector.configure(values=section.selector.labels)
            selector.set(section.selector.selected_label)
        params = self.param_frames.get(section.key)
        if params is not None:
            self._fill_params(params, section)

    def show_status(self, text: str) -> None:
        self.app.console_var.set(text)

    def show_error(self, text: str, *, fatal: bool = False) -> None:
        self.app.console_var.set(text)
        self.app.banner_var.set(text)
        if fatal:
            messagebox.showerror("Editor Load Failed", text)

    # Section bookkeeping

    def _drop_section(self, key: str) -> None:
        frame = self.section_frames.pop(key, None)
        if frame is not None:
            frame.destroy()
        prefix = key + "/"
        for registry in (self.param_frames, self.selectors):
            for nested in [item for item in registry if item.startswith(prefix)]:
                registry.pop(nested, None)

    def _repack(self, order: list[str]) -> None:
        frames = [self.section_frames[key] for key in order if key in self.section_frames]
        for frame in frames:
            frame.pack_forget()
        for frame in frames:
            frame.pack(fill=tk.X, padx=6, pady=6)

    # Fields

    def _build_field(self, parent: Any, row: int, item: FieldWidget, commit: Callable[[], str]) -> None:
        ttk.Label(parent, text=item.label or item.name).grid(row=row, column=0, sticky="nw", padx=6, pady=2)
        validation_var = tk.StringVar(value="")
        committed = {"raw": item.raw, "checked": item.checked}

        def run_commit(*_: Any) -> None:
            if item.raw == committed["raw"] and item.checked == committed["checked"]:
                return
            result = commit()
            if not result.startswith("invalid:"):
                committed["raw"] = item.raw
                committed["checked"] = item.checked
            validation_var.set(result)

        if item.kind == FIELD_TOGGLE:
            checked_var = tk.BooleanVar(value=item.checked)

            def on_toggle() -> None:
                item.checked = bool(checked_var.get())
                run_commit()

            control: Any = ttk.Checkbutton(parent, variable=checked_var, command=on_toggle)
        elif item.kind == FIELD_JSON:
            control = tk.Text(parent, height=4, width=40, wrap=tk.NONE)
            control.insert("1.0", item.raw)

            def on_text_commit(_: Any = None) -> None:
                item.raw = control.get("1.0", "end-1c")
                run_commit()

            control.bind("<FocusOut>", on_text_commit)
        else:
            raw_var = tk.StringVar(value=item.raw)
            raw_var.trace_add("write", lambda *_: setattr(item, "raw", raw_var.get()))
            if item.kind == FIELD_CHOICE:
                values = list(item.options)
                if item.raw not in values:
                    values.append(item.raw)
                control = ttk.Combobox(parent, textvariable=raw_var, state="readonly", values=values, width=24)
                control.bind("<<ComboboxSelected>>", run_commit)
            elif item.kind == FIELD_NUMBER:
                control = ttk.Spinbox(
                    parent,
                    textvariable=raw_var,
                    from_=item.minimum if item.minimum is not None else -SPIN_LIMIT,
                    to=item.maximum if item.maximum is not None else SPIN_LIMIT,
                    increment=1 if item.data_type == "integer" else 0.1,
                    width=14,
                    command=run_commit,
                )
            else:
                control = ttk.Entry(parent, textvariable=raw_var, width=32)
            control.bind("<FocusOut>", run_commit)
            control.bind("<Return>", run_commit)

        control.grid(row=row, column=1, sticky="w", padx=6, pady=2)
        ttk.Label(parent, textvariable=validation_var, foreground="#b00020").grid(
            row=row, column=2, sticky="w", padx=6, pady=2
        )
        if item.description:
            ttk.Label(parent, text=item.description, foreground="#666666").grid(
                row=row, column=3, sticky="w", padx=6, pady=2
            )

    # Sections

    def _build_polymorphic(
        self,
        parent: Any,
        section: PolymorphicSection,
        *,
        on_remove: Callable[[], Any] | None = None,
    ) -> ttk.LabelFrame:
        controller = self.app.controller
        frame = ttk.LabelFrame(parent, text=section.title)
        header = ttk.Frame(frame)
        header.pack(fill=tk.X, padx=4, pady=(2, 0))

        row = 0
        for item in section.fixed_fields:
            self._build_field(header, row, item, lambda name=item.name: controller.commit_fixed(section, name))
            row += 1

        ttk.Label(header, text="Type").grid(row=row, column=0, sticky="w", padx=6, pady=2)
        selector = ttk.Combobox(header, state="readonly", values=section.selector.labels, width=28)
        selector.set(section.selector.selected_label)
        selector.grid(row=row, column=1, sticky="w", padx=6, pady=2)
        selector.bind("<<ComboboxSelected>>", lambda _e: self._on_type_selected(section, selector))
        self.selectors[section.key] = selector

        if on_remove is not None:
            ttk.Button(header, text="Remove", command=on_remove).grid(row=0, column=4, sticky="e", padx=6, pady=2)

        params = ttk.Frame(frame)
        params.pack(fill=tk.X, padx=(18, 4), pady=(0, 4))
        self.param_frames[section.key] = params
        self._fill_params(params, section)
        return frame

    def _on_type_selected(self, section: PolymorphicSection, selector: ttk.Combobox) -> None:
        type_key = section.selector.key_for_label(selector.get())
        if type_key is not None:
            self.app.controller.change_type(section, type_key)
        selector.set(section.selector.selected_label)

    def _fill_params(self, parent: ttk.Frame, section: PolymorphicSection) -> None:
        controller = self.app.controller
        for child in parent.winfo_children():
            child.destroy()
        block = section.params
        if block is None or not block.fields:
            text = block.empty_text if block is not None else ""
            ttk.Label(parent, text=text).grid(row=0, column=0, sticky="w", padx=6, pady=2)
            return
        for row, item in enumerate(block.fields):
            self._build_field(parent, row, item, lambda name=item.name: controller.commit_param(section, name))

    def _build_chain(self, section: ChainSection) -> ttk.LabelFrame:
        controller = self.app.controller
        frame = ttk.LabelFrame(self.chains_frame, text=f"Chain: {section.chain_id}")

        fields = ttk.Frame(frame)
        fields.pack(fill=tk.X, padx=4, pady=(2, 0))
        for row, item in enumerate(section.fields):
            self._build_field(fields, row, item, lambda name=item.name: controller.commit_chain_field(section, name))
        ttk.Button(
            fields,
            text="Remove Chain",
            command=lambda chain_id=section.chain_id: controller.remove_chain(chain_id),
        ).grid(row=0, column=4, sticky="e", padx=6, pady=2)

        self._build_polymorphic(frame, section.output).pack(fill=tk.X, padx=8, pady=4)

        effects = ttk.LabelFrame(frame, text="Effects")
        effects.pack(fill=tk.X, padx=8, pady=4)
        if not section.effects:
            ttk.Label(effects, text="No effects.").pack(anchor="w", padx=6, pady=2)
        for effect in section.effects:
            self._build_polymorphic(
                effects,
                effect,
                on_remove=lambda effect_id=effect.ident: controller.remove_effect(section.chain_id, effect_id),
            ).pack(fill=tk.X, padx=6, pady=4)
        ttk.Button(
            effects,
            text="Add Effect",
            command=lambda chain_id=section.chain_id: controller.add_effect(chain_id),
        ).pack(anchor="w", padx=6, pady=(2, 6))
        return frame

    def _build_event(self, section: EventSection) -> ttk.LabelFrame:
        controller = self.app.controller
        frame = ttk.LabelFrame(self.events_frame, text=f"Event: {section.event_name}")

        header = ttk.Frame(frame)
        header.pack(fill=tk.X, padx=4, pady=(2, 0))
        self._build_field(header, 0, section.name_field, lambda: controller.commit_event_name(section))
        ttk.Button(
            header,
            text="Remove Event",
            command=lambda name=section.event_name: controller.remove_event(name),
        ).grid(row=0, column=4, sticky="e", padx=6, pady=2)

        if not section.actions:
            ttk.Label(frame, text="No actions.").pack(anchor="w", padx=10, pady=2)
        for action in section.actions:
            self._build_polymorphic(
                frame,
                action,
                on_remove=lambda index=action.ident: controller.remove_action(section.event_name, index),
            ).pack(fill=tk.X, padx=8, pady=4)
        ttk.Button(
            frame,
            text="Add Action",
            command=lambda name=section.event_name: controller.add_action(name),
        ).pack(anchor="w", padx=8, pady=(2, 6))
        return frame


class LightdeskApp:
    def __init__(self, root: tk.Tk, settings: Settings) -> None:
        self.root = root
        self.settings = settings
        self.client = LightdeskClient(settings.base_url, timeout_seconds=settings.request_timeout_seconds)
        self.console_var = tk.StringVar(value="ready")
        self.banner_var = tk.StringVar(value="")
        self.tempo_var = tk.StringVar(value="-")
        self.tempo_input_var = tk.StringVar(value="")
        self.load_lock = threading.Lock()

        self._build_ui()
        self.view = TkEditorView(self, self.chains_frame, self.events_frame)
        self.controller = ConfigEditorController(self.client, self.view)
        self.poller = LivePoller(
            self.client,
            {
                RESOURCE_TEMPO: self._render_tempo,
                RESOURCE_CHAINS: self._render_live_chains,
                RESOURCE_EVENTS: self._render_live_events,
            },
            dispatch=lambda fn: self.root.after(0, fn),
            schedule=self.root.after,
            status=self.console_var.set,
            interval_seconds=settings.refresh_seconds,
            tempo_step=settings.tempo_step,
        )

        logger.info("editing %s (live refresh every %.1fs)", settings.base_url, settings.refresh_seconds)
        self._load_async()
        self.poller.start()
        self.root.protocol("WM_DELETE_WINDOW", self._on_close)

    def _build_ui(self) -> None:
        self.root.title(f"Lightdesk ({self.settings.base_url})")
        self.root.geometry("1280x860")
        self._build_menu()

        top = ttk.Frame(self.root)
        top.pack(fill=tk.BOTH, expand=True, padx=10, pady=10)

        ttk.Label(top, textvariable=self.banner_var, foreground="#b00020").pack(fill=tk.X, padx=8, pady=(6, 0))

        tabs = ttk.Notebook(top)
        tabs.pack(fill=tk.BOTH, expand=True, padx=4, pady=6)

        live_tab = ttk.Frame(tabs)
        tabs.add(live_tab, text="Live")
        self._build_live_tab(live_tab)

        chains_tab = ttk.Frame(tabs)
        tabs.add(chains_tab, text="Chains")
        chains_toolbar = ttk.Frame(chains_tab)
        chains_toolbar.pack(fill=tk.X, padx=4, pady=(4, 2))
        ttk.Button(chains_toolbar, text="Add Chain", command=lambda: self.controller.add_chain()).pack(side=tk.LEFT)
        self._build_save_buttons(chains_toolbar)
        self.chains_frame = _scroll_area(chains_tab)

        events_tab = ttk.Frame(tabs)
        tabs.add(events_tab, text="Events")
        events_toolbar = ttk.Frame(events_tab)
        events_toolbar.pack(fill=tk.X, padx=4, pady=(4, 2))
        ttk.Button(events_toolbar, text="Add Event", command=lambda: self.controller.add_event()).pack(side=tk.LEFT)
        self._build_save_buttons(events_toolbar)
        self.events_frame = _scroll_area(events_tab)

        footer = ttk.Frame(self.root)
        footer.pack(fill=tk.X, padx=10, pady=(0, 10))
        ttk.Label(footer, text="Console:").pack(side=tk.LEFT)
        ttk.Label(footer, textvariable=self.console_var).pack(side=tk.LEFT, padx=(6, 0))
        ttk.Button(footer, text="Refresh Now", command=lambda: self.poller.refresh_now()).pack(side=tk.RIGHT)

    def _build_save_buttons(self, toolbar: ttk.Frame) -> None:
        ttk.Button(toolbar, text="Save", command=self._save_async).pack(side=tk.RIGHT, padx=(6, 0))
        ttk.Button(toolbar, text="Reload", command=self._reload_async).pack(side=tk.RIGHT)

    def _build_menu(self) -> None:
        menu_bar = tk.Menu(self.root)
        file_menu = tk.Menu(menu_bar, tearoff=0)
        file_menu.add_command(label="Save", command=self._save_async)
        file_menu.add_command(label="Reload", command=self._reload_async)
        file_menu.add_separator()
        file_menu.add_command(label="Exit", command=self._on_close)
        menu_bar.add_cascade(label="File", menu=file_menu)
        self.root.config(menu=menu_bar)

    def _build_live_tab(self, parent: ttk.Frame) -> None:
        tempo_row = ttk.Frame(parent)
        tempo_row.pack(fill=tk.X, padx=8, pady=(8, 4))
        ttk.Label(tempo_row, text="Tempo (BPM):").pack(side=tk.LEFT)
        ttk.Label(tempo_row, textvariable=self.tempo_var, width=8).pack(side=tk.LEFT, padx=(6, 12))
        step = format_tempo(self.settings.tempo_step)
        ttk.Button(tempo_row, text=f"-{step}", command=lambda: self._run_async(self.poller.nudge_tempo, -1)).pack(
            side=tk.LEFT
        )
        ttk.Button(tempo_row, text=f"+{step}", command=lambda: self._run_async(self.poller.nudge_tempo, 1)).pack(
            side=tk.LEFT, padx=(6, 12)
        )
        tempo_entry = ttk.Entry(tempo_row, textvariable=self.tempo_input_var, width=8)
        tempo_entry.pack(side=tk.LEFT)
        tempo_entry.bind("<Return>", lambda _e: self._set_tempo_from_input())
        ttk.Button(tempo_row, text="Set", command=self._set_tempo_from_input).pack(side=tk.LEFT, padx=(6, 0))

        chains_box = ttk.LabelFrame(parent, text="Running Chains")
        chains_box.pack(fill=tk.BOTH, expand=True, padx=8, pady=4)
        self.live_chains_text = tk.Text(chains_box, height=16, wrap=tk.NONE, state=tk.DISABLED)
        self.live_chains_text.pack(fill=tk.BOTH, expand=True, padx=4, pady=4)

        self.live_events_frame = ttk.LabelFrame(parent, text="Trigger Event")
        self.live_events_frame.pack(fill=tk.X, padx=8, pady=(4, 8))
        ttk.Label(self.live_events_frame, text="Waiting for live refresh...").grid(row=0, column=0, padx=6, pady=4)

    # Live renderers; the poller only calls these when a resource changed.

    def _render_tempo(self, value: Any) -> None:
        self._set_stringvar_if_changed(self.tempo_var, format_tempo(value))

    def _render_live_chains(self, value: Any) -> None:
        lines: list[str] = []
        for view in value or []:
            lines.extend(describe_chain_view(view))
            lines.append("")
        text = "\n".join(lines).strip() or "No chains running."
        self.live_chains_text.configure(state=tk.NORMAL)
        self.live_chains_text.delete("1.0", tk.END)
        self.live_chains_text.insert("1.0", text)
        self.live_chains_text.configure(state=tk.DISABLED)

    def _render_live_events(self, value: Any) -> None:
        for child in self.live_events_frame.winfo_children():
            child.destroy()
        names = list(value or [])
        if not names:
            ttk.Label(self.live_events_frame, text="No events configured.").grid(row=0, column=0, padx=6, pady=4)
            return
        for index, name in enumerate(names):
            ttk.Button(
                self.live_events_frame,
                text=name,
                command=lambda event_name=name: self._run_async(self.poller.trigger_event, event_name),
            ).grid(row=index // EVENT_BUTTON_COLUMNS, column=index % EVENT_BUTTON_COLUMNS, sticky="we", padx=4, pady=4)

    def _set_tempo_from_input(self) -> None:
        text = self.tempo_input_var.get().strip()
        try:
            bpm = float(text)
        except ValueError:
            self.console_var.set(f"invalid tempo: {text!r}")
            return
        if not bpm > 0:
            self.console_var.set(f"invalid tempo: {text!r}")
            return
        self._run_async(self.poller.set_tempo, bpm)

    # Editor load / save

    def _run_async(self, target: Callable[..., Any], *args: Any) -> None:
        threading.Thread(target=target, args=args, daemon=True).start()

    def _load_async(self) -> None:
        if not self.load_lock.acquire(blocking=False):
            return
        self.banner_var.set("")
        self.console_var.set("Loading editor...")

        def run_load() -> None:
            try:
                session = fetch_session(self.client)
            except FetchError as ex:
                self.root.after(0, lambda error=ex: self.controller.fail(error))
                return
            finally:
                self.load_lock.release()
            self.root.after(0, lambda: self.controller.install(session))

        threading.Thread(target=run_load, daemon=True).start()

    def _reload_async(self) -> None:
        self.controller.begin_reload()
        self._load_async()

    def _save_async(self) -> None:
        try:
            payload, revision = self.controller.snapshot_for_save()
        except SaveError as ex:
            self.controller.save_failed(ex)
            return
        self.banner_var.set("")
        self.console_var.set("Saving...")

        def run_save() -> None:
            try:
                message = self.controller.submit(payload)
            except SaveError as ex:
                self.root.after(0, lambda error=ex: self.controller.save_failed(error))
                return
            self.root.after(0, lambda: self.controller.save_succeeded(revision, message))

        threading.Thread(target=run_save, daemon=True).start()

    def _set_stringvar_if_changed(self, var: Any, value: str) -> None:
        if not isinstance(var, tk.StringVar):
            return
        text = str(value)
        if var.get() == text:
            return
        var.set(text)

    def _on_close(self) -> None:
        self.poller.stop()
        self.client.close()
        self.root.destroy()


def run_check(settings: Settings) -> int:
    with LightdeskClient(settings.base_url, timeout_seconds=settings.request_timeout_seconds) as client:
        try:
            session = fetch_session(client)
            model = ConfigModel.from_payload(
                session.config_payload,
                effect_schemas=session.effect_schemas,
                action_schemas=session.action_schemas,
            )
        except (FetchError, ValueError) as ex:
            logger.error("check against %s failed: %s", settings.base_url, ex)
            print(f"check failed: {ex}")
            return 2
    print(f"baseUrl={settings.base_url}")
    print(f"effectTypes={len(model.effect_schemas)}")
    print(f"actionTypes={len(model.action_schemas)}")
    print(f"chains={len(model.chains)}")
    for chain in model.chains:
        print(f"- {chain.id} output={chain.output.type} effects={len(chain.effects)}")
    print(f"events={len(model.events)}")
    for name, actions in model.events.items():
        print(f"- {name} actions={len(actions)}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Config editor and live view for a lighting backend.")
    parser.add_argument("--base-url", default=None, help="Backend base URL (overrides settings and environment).")
    parser.add_argument("--settings", default=None, help="Optional JSON settings file.")
    parser.add_argument("--refresh-seconds", type=float, default=None)
    parser.add_argument("--timeout", type=float, default=None, help="HTTP request timeout in seconds.")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Load schemas and config, print summary, then exit.",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings_path: Path | None = None
    if args.settings:
        settings_path = Path(args.settings).resolve()
        if not settings_path.exists():
            raise SystemExit(f"Settings not found: {settings_path}")
    try:
        settings = load_settings(
            settings_path,
            base_url=args.base_url,
            refresh_seconds=args.refresh_seconds,
            request_timeout_seconds=args.timeout,
        )
    except ValueError as ex:
        raise SystemExit(f"Invalid settings: {ex}") from ex

    if args.check:
        return run_check(settings)

    root = tk.Tk()
    LightdeskApp(root, settings)
    root.mainloop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
