"""Frame clock, video source and end-to-end kiosk wiring."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional, Union

from signage.attribution.category import CategoryAggregator, CategoryBroadcaster, JsonStateFileListener
from signage.config import KioskConfig
from signage.errors import SourceUnavailable
from signage.io_utils import resolve_path
from signage.pipeline.scheduler import DetectionScheduler, Detector, Renderer
from signage.recognition.matcher import DescriptorMatcher
from signage.recognition.registration import RegistrationCoordinator, RegistrationOutcome
from signage.store.identity_store import IdentityStore

LOGGER = logging.getLogger("signage.pipeline.runner")

STATUS_LOADING = "Loading face recognition models..."
STATUS_READY_EMPTY = "Ready. Face the camera to register."
STATUS_READY = "System ready. Face the camera to begin detection."
STATUS_ACTIVE = "Camera active. Detecting faces..."


class VideoSource:
    """OpenCV capture that reports "not ready" instead of raising.

    ``read`` returns None while the device is closed, still warming up, or
    past the end of a file; a closed device is reopened at most every
    ``reopen_interval_s`` seconds.
    """

    def __init__(
        self,
        source: Union[int, str],
        width: int = 640,
        height: int = 480,
        reopen_interval_s: float = 2.0,
    ) -> None:
        self.source = source
        self.width = width
        self.height = height
        self.reopen_interval_s = reopen_interval_s
        self._cap: Any = None
        self._last_open_attempt = float("-inf")
        self.last_error: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def open(self, strict: bool = False) -> bool:
        import cv2

        self._last_open_attempt = time.monotonic()
        cap = cv2.VideoCapture(self.source)
        if isinstance(self.source, int):
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        if not cap.isOpened():
            cap.release()
            self._cap = None
            self.last_error = f"Cannot access camera: unable to open video source {self.source!r}"
            if strict:
                raise SourceUnavailable(self.last_error)
            LOGGER.warning("%s", self.last_error)
            return False
        self._cap = cap
        self.last_error = None
        LOGGER.info("Opened video source %r", self.source)
        return True

    def read(self) -> Optional[Any]:
        if not self.is_open:
            if time.monotonic() - self._last_open_attempt < self.reopen_interval_s:
                return None
            if not self.open():
                return None
        ok, frame = self._cap.read()
        if not ok or frame is None:
            return None
        return frame

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None


async def run_frame_clock(
    read_frame: Callable[[], Optional[Any]],
    scheduler: DetectionScheduler,
    fps: float = 30.0,
    should_stop: Callable[[], bool] = lambda: False,
    max_ticks: Optional[int] = None,
    on_readiness: Optional[Callable[[bool], None]] = None,
    on_idle: Optional[Callable[[], None]] = None,
) -> int:
    """Tick ``scheduler`` once per display period until stopped; returns the tick count.

    ``on_idle`` runs on ticks without a frame, e.g. to keep a preview window
    responsive while the source is down.

    The loop re-arms in exactly one place (the sleep at the bottom), whether the
    tick dispatched inference, redrew the cache or skipped an unready source.
    """
    loop = asyncio.get_running_loop()
    period = 1.0 / fps
    ticks = 0
    was_ready: Optional[bool] = None
    while not should_stop():
        started = loop.time()
        frame = await asyncio.to_thread(read_frame)
        ready = frame is not None
        if ready != was_ready:
            was_ready = ready
            if on_readiness is not None:
                on_readiness(ready)
        scheduler.tick(frame)
        if not ready and on_idle is not None:
            on_idle()
        ticks += 1
        if max_ticks is not None and ticks >= max_ticks:
            break
        await asyncio.sleep(max(0.0, period - (loop.time() - started)))
    return ticks


class KioskRunner:
    """Builds the matcher/registrar/aggregator/scheduler graph and runs it."""

    def __init__(
        self,
        config: KioskConfig,
        source: VideoSource,
        detect: Detector,
        store: IdentityStore,
        renderer: Optional[Renderer] = None,
        on_status: Optional[Callable[[str], None]] = None,
        on_idle: Optional[Callable[[], None]] = None,
    ) -> None:
        self.config = config
        self.source = source
        self.store = store
        self._on_status = on_status
        self._on_idle = on_idle
        self.status = ""

        self.matcher = DescriptorMatcher(threshold=config.match_threshold)
        self.broadcaster = CategoryBroadcaster(channel=config.channel)
        self.state_listener: Optional[JsonStateFileListener] = None
        state_path = resolve_path(config.state_file)
        if state_path is not None:
            self.state_listener = JsonStateFileListener(state_path, channel=config.channel)
            self.broadcaster.subscribe(self.state_listener)
        self.aggregator = CategoryAggregator(self.broadcaster, window_ms=config.category_window_ms)
        self.registrar = RegistrationCoordinator(
            store,
            self.matcher,
            cooldown_ms=config.registration_cooldown_ms,
            on_registered=self._registered,
        )
        self.scheduler = DetectionScheduler(
            detect,
            self.matcher,
            self.registrar,
            self.aggregator,
            renderer=renderer,
            interval_ms=config.detection_interval_ms,
        )

    def set_status(self, text: str) -> None:
        if text == self.status:
            return
        self.status = text
        LOGGER.info("Status: %s", text)
        if self._on_status is not None:
            self._on_status(text)

    def _registered(self, outcome: RegistrationOutcome) -> None:
        ids = ", ".join(identity.id for identity in outcome.identities)
        self.set_status(f"{STATUS_ACTIVE} ({len(outcome.identities)} users: {ids})")

    def _readiness_changed(self, ready: bool) -> None:
        if ready:
            self.set_status(STATUS_ACTIVE)
        elif self.source.last_error:
            self.set_status(f"{self.source.last_error}. Please allow camera access.")

    async def run(self, should_stop: Callable[[], bool] = lambda: False, max_ticks: Optional[int] = None) -> int:
        self.set_status(STATUS_LOADING)
        await self.registrar.refresh()
        self.set_status(STATUS_READY if self.matcher.identities else STATUS_READY_EMPTY)
        self.source.open()
        try:
            return await run_frame_clock(
                self.source.read,
                self.scheduler,
                fps=self.config.display_fps,
                should_stop=should_stop,
                max_ticks=max_ticks,
                on_readiness=self._readiness_changed,
                on_idle=self._on_idle,
            )
        finally:
            task = self.scheduler.inference_task
            if task is not None and not task.done():
                await asyncio.gather(task, return_exceptions=True)
            await self.registrar.drain()
            if self.state_listener is not None:
                await self.state_listener.drain()
            await self.store.aclose()
            self.source.release()
