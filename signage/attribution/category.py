"""Sliding-window dominant age category and its publish channel."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from signage.io_utils import dump_json, ensure_dir
from signage.types import FEMALE, MALE, NO_DOMINANT_CATEGORY, DetectionObservation, DominantCategoryResult

LOGGER = logging.getLogger("signage.attribution.category")

DEFAULT_WINDOW_MS = 2000.0
DOMINANCE_PCT = 50.0
DEFAULT_CHANNEL = "dominantAgeCategory"

Listener = Callable[[Dict], None]


def wall_clock_ms() -> float:
    return time.time() * 1000.0


@dataclass
class _CategoryTally:
    count: int = 0
    male: int = 0
    female: int = 0

    def add(self, gender: Optional[str]) -> None:
        self.count += 1
        normalized = gender.lower() if gender else None
        if normalized == MALE:
            self.male += 1
        elif normalized == FEMALE:
            self.female += 1

    @property
    def dominant_gender(self) -> Optional[str]:
        if self.male > self.female:
            return MALE
        if self.female > self.male:
            return FEMALE
        return None


def prune_window(
    observations: Iterable[DetectionObservation],
    now_ms: float,
    window_ms: float = DEFAULT_WINDOW_MS,
) -> List[DetectionObservation]:
    """Keep observations strictly younger than ``window_ms`` at ``now_ms``."""
    return [obs for obs in observations if now_ms - obs.timestamp_ms < window_ms]


def dominant_category(
    observations: Sequence[DetectionObservation],
    now_ms: float,
    window_ms: float = DEFAULT_WINDOW_MS,
) -> DominantCategoryResult:
    """Return the first category (in insertion order) holding at least half of the window.

    Gender is the strict majority of male/female tallies inside the winning
    category; a tie (including 0/0) leaves it None.
    """
    recent = prune_window(observations, now_ms, window_ms)
    if not recent:
        return NO_DOMINANT_CATEGORY

    tallies: Dict[str, _CategoryTally] = {}
    for obs in recent:
        if not obs.category:
            continue
        tallies.setdefault(obs.category, _CategoryTally()).add(obs.gender)

    total = len(recent)
    for category, tally in tallies.items():
        percentage = tally.count / total * 100.0
        if percentage >= DOMINANCE_PCT:
            return DominantCategoryResult(category=category, gender=tally.dominant_gender)
    return NO_DOMINANT_CATEGORY


class CategoryBroadcaster:
    """Fan-out of the current dominant category to in-process listeners."""

    def __init__(self, channel: str = DEFAULT_CHANNEL) -> None:
        self.channel = channel
        self._listeners: List[Listener] = []
        self.last_payload: Optional[Dict] = None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, result: DominantCategoryResult, timestamp_ms: float) -> Dict:
        payload = result.to_payload(timestamp_ms)
        self.last_payload = payload
        for listener in list(self._listeners):
            try:
                listener(payload)
            except Exception as exc:  # listener failures never reach the detection loop
                LOGGER.error("Listener on %s failed: %s", self.channel, exc)
        return payload


class JsonStateFileListener:
    """Mirrors every publish into a JSON file keyed by channel name.

    Inside a running event loop the write happens in a worker thread; only the
    latest payload is kept while a write is in progress.
    """

    def __init__(self, path: Path, channel: str = DEFAULT_CHANNEL) -> None:
        self.path = Path(path)
        self.channel = channel
        self._latest: Optional[Dict] = None
        self._writer: Optional[asyncio.Task] = None
        ensure_dir(self.path.parent)

    def write(self, payload: Dict) -> None:
        dump_json(self.path, {self.channel: payload})

    def __call__(self, payload: Dict) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.write(payload)
            return
        self._latest = payload
        if self._writer is None or self._writer.done():
            self._writer = loop.create_task(self._flush())

    async def _flush(self) -> None:
        while self._latest is not None:
            payload, self._latest = self._latest, None
            try:
                await asyncio.to_thread(self.write, payload)
            except OSError as exc:
                LOGGER.error("Cannot write state file %s: %s", self.path, exc)

    async def drain(self) -> None:
        """Wait until the latest payload is on disk."""
        if self._writer is not None:
            await self._writer


class CategoryAggregator:
    """Owns the rolling observation window and publishes one verdict per call."""

    def __init__(
        self,
        broadcaster: Optional[CategoryBroadcaster] = None,
        window_ms: float = DEFAULT_WINDOW_MS,
        clock: Callable[[], float] = wall_clock_ms,
    ) -> None:
        self.broadcaster = broadcaster or CategoryBroadcaster()
        self.window_ms = window_ms
        self._clock = clock
        self._window: List[DetectionObservation] = []
        self.last_result: DominantCategoryResult = NO_DOMINANT_CATEGORY

    @property
    def window(self) -> List[DetectionObservation]:
        return list(self._window)

    def aggregate(
        self,
        observations: Iterable[DetectionObservation] = (),
        now_ms: Optional[float] = None,
    ) -> DominantCategoryResult:
        """Add ``observations``, drop expired ones, recompute and publish.

        Publishes even when the verdict is unchanged; listeners treat each
        payload as the current state.
        """
        now = self._clock() if now_ms is None else now_ms
        self._window = prune_window([*self._window, *observations], now, self.window_ms)
        result = dominant_category(self._window, now, self.window_ms)
        self.last_result = result
        self.broadcaster.publish(result, now)
        LOGGER.debug(
            "Window=%d observations -> category=%s gender=%s",
            len(self._window),
            result.category,
            result.gender,
        )
        return result
