"""Live read view: tempo, chain snapshot and trigger names, polled and diffed."""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable

from lightdesk_errors import LightdeskError

logger = logging.getLogger(__name__)

RESOURCE_TEMPO = "tempo"
RESOURCE_CHAINS = "chains"
RESOURCE_EVENTS = "events"
LIVE_RESOURCES = (RESOURCE_TEMPO, RESOURCE_CHAINS, RESOURCE_EVENTS)

DEFAULT_POLL_SECONDS = 1.0
MIN_POLL_SECONDS = 0.2
DEFAULT_TEMPO_STEP = 5.0


def snapshot_signature(value: Any) -> Any:
    """Hashable, order-normalised form of a JSON value.

    Object keys are sorted so insertion order does not matter; list order is
    kept. Leaves are tagged with their kind so ``1``, ``1.0`` and ``True``
    stay distinct.
    """
    if isinstance(value, dict):
        return ("obj", tuple(sorted((str(key), snapshot_signature(item)) for key, item in value.items())))
    if isinstance(value, (list, tuple)):
        return ("list", tuple(snapshot_signature(item) for item in value))
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, int):
        return ("int", value)
    if isinstance(value, float):
        if math.isnan(value):
            return ("nan",)
        return ("float", value)
    if value is None:
        return ("null",)
    return ("str", str(value))


def snapshot_changed(previous: Any, current: Any) -> bool:
    return snapshot_signature(previous) != snapshot_signature(current)


def format_tempo(bpm: Any) -> str:
    try:
        return f"{float(bpm):.2f}"
    except (TypeError, ValueError):
        return "-"


def describe_chain_view(view: Any) -> list[str]:
    if not isinstance(view, dict):
        return ["(invalid chain view)"]
    output = view.get("Output") if isinstance(view.get("Output"), dict) else {}
    effects = view.get("Effects") if isinstance(view.get("Effects"), list) else []
    lines = [
        f"Chain ID: {view.get('ID', '-')}",
        f"Priority: {view.get('Priority', '-')}",
        f"Tick Rate: {view.get('TickRate', '-')} FPS",
        f"Num Lamps: {view.get('NumLamps', '-')}",
        f"Output: {output.get('Type', '-')} ({output.get('ChannelMapping', '-')}, "
        f"{output.get('NumChannelsPerLamp', '-')} ch/lamp)",
    ]
    if not effects:
        lines.append("Effects: (none)")
    for effect in effects:
        if not isinstance(effect, dict):
            continue
        state = "" if effect.get("Enabled", True) is not False else " [disabled]"
        lines.append(f"  - {effect.get('Type', '-')}{state}")
    return lines


class ErrorLogLimiter:
    """Logs a repeating failure once per resource and the recovery after it."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger
        self._last: dict[str, str] = {}
        self._suppressed: dict[str, int] = {}

    def failure(self, resource: str, message: str) -> None:
        if self._last.get(resource) == message:
            self._suppressed[resource] = self._suppressed.get(resource, 0) + 1
            return
        self._last[resource] = message
        self._suppressed[resource] = 0
        self.log.warning("live %s fetch failed: %s", resource, message)

    def success(self, resource: str) -> None:
        if resource not in self._last:
            return
        suppressed = self._suppressed.pop(resource, 0)
        self._last.pop(resource, None)
        self.log.info("live %s fetch recovered (%d repeated failures suppressed)", resource, suppressed)


class LivePoller:
    """Fixed-interval poll of the three read-only live resources.

    Fetches run on worker threads; every result is handed to ``dispatch`` so
    the snapshot cache and the renderers only run on the UI thread. Each
    resource is compared and rendered on its own, as soon as it resolves.
    The poller never touches the editor's config model.
    """

    def __init__(
        self,
        client: Any,
        renderers: dict[str, Callable[[Any], None]],
        *,
        dispatch: Callable[[Callable[[], None]], None] | None = None,
        schedule: Callable[[int, Callable[[], None]], Any] | None = None,
        status: Callable[[str], None] | None = None,
        interval_seconds: float = DEFAULT_POLL_SECONDS,
        tempo_step: float = DEFAULT_TEMPO_STEP,
    ) -> None:
        self.client = client
        self.renderers = dict(renderers)
        self.dispatch = dispatch or (lambda fn: fn())
        self.schedule = schedule
        self.status = status or (lambda _text: None)
        self.interval_seconds = max(MIN_POLL_SECONDS, float(interval_seconds))
        self.tempo_step = float(tempo_step)
        self.values: dict[str, Any] = {}
        self._signatures: dict[str, Any] = {}
        self._errors = ErrorLogLimiter()
        self._poll_lock = threading.Lock()
        self._force_pending = False
        self._running = False

    @property
    def tempo(self) -> float:
        try:
            return float(self.values.get(RESOURCE_TEMPO, 0.0))
        except (TypeError, ValueError):
            return 0.0

    def _fetchers(self) -> dict[str, Callable[[], Any]]:
        return {
            RESOURCE_TEMPO: self.client.get_bpm,
            RESOURCE_CHAINS: self.client.get_chains,
            RESOURCE_EVENTS: self.client.get_events,
        }

    def apply(self, resource: str, value: Any) -> bool:
        """Store ``value`` and render it if it differs from the cached snapshot."""
        signature = snapshot_signature(value)
        if resource in self._signatures and self._signatures[resource] == signature:
            return False
        self._signatures[resource] = signature
        self.values[resource] = value
        renderer = self.renderers.get(resource)
        if renderer is not None:
            renderer(value)
        return True

    def _failed(self, resource: str, message: str) -> None:
        # Previous snapshot stays in place; the next tick retries.
        self._errors.failure(resource, message)

    def _poll_pass(self) -> None:
        fetchers = self._fetchers()
        with ThreadPoolExecutor(max_workers=len(fetchers)) as executor:
            futures = {executor.submit(fetch): resource for resource, fetch in fetchers.items()}
            for future in as_completed(futures):
                resource = futures[future]
                try:
                    value = future.result()
                except LightdeskError as ex:
                    self.dispatch(lambda res=resource, text=str(ex): self._failed(res, text))
                    continue
                self.dispatch(lambda res=resource: self._errors.success(res))
                self.dispatch(lambda res=resource, item=value: self.apply(res, item))

    def poll_once(self) -> bool:
        """Run one poll; returns False when another poll was already running.

        A poll requested while one is running sets a pending flag and the
        running poll repeats once it finishes.
        """
        ran = False
        while True:
            if not self._poll_lock.acquire(blocking=False):
                self._force_pending = True
                return ran
            try:
                self._force_pending = False
                self._poll_pass()
            finally:
                self._poll_lock.release()
            ran = True
            if not self._force_pending:
                return True

    def start(self) -> None:
        if self.schedule is None:
            raise RuntimeError("LivePoller.start requires a schedule callable")
        self._running = True
        self._tick()

    def stop(self) -> None:
        self._running = False

    def _tick(self) -> None:
        if not self._running:
            return
        threading.Thread(target=self.poll_once, daemon=True).start()
        if self.schedule is not None:
            self.schedule(int(self.interval_seconds * 1000), self._tick)

    def refresh_now(self) -> None:
        threading.Thread(target=self.poll_once, daemon=True).start()

    def set_tempo(self, bpm: float) -> float | None:
        """Write a tempo and show the backend's answer right away."""
        try:
            confirmed = self.client.set_bpm(bpm)
        except LightdeskError as ex:
            logger.warning("tempo update to %s failed: %s", format_tempo(bpm), ex)
            self.dispatch(lambda text=str(ex): self.status(f"tempo update failed: {text}"))
            return None
        self.dispatch(lambda value=confirmed: self.apply(RESOURCE_TEMPO, value))
        return confirmed

    def nudge_tempo(self, direction: int) -> float | None:
        return self.set_tempo(self.tempo + direction * self.tempo_step)

    def trigger_event(self, event_name: str) -> Any:
        """Fire an event, then refresh all live resources out of band."""
        try:
            result = self.client.trigger_event(event_name)
        except LightdeskError as ex:
            logger.warning("trigger %r failed: %s", event_name, ex)
            self.dispatch(lambda text=str(ex): self.status(f"trigger failed: {text}"))
            return None
        logger.info("triggered event %r", event_name)
        self.dispatch(lambda: self.status(f"triggered {event_name}"))
        self.poll_once()
        return result
