"""Detection scheduler: paces inference against the display clock.

Each display tick either redraws the cached boxes of the last completed batch
or, when no inference is outstanding and the detection interval has elapsed,
dispatches a new inference task. The tick itself never awaits inference, so
frame pacing stays independent of inference latency.

The busy check and the transition to ``INFERRING`` happen in the same
synchronous ``tick`` call on the event loop thread. Inference may run in a
worker thread, but its completion is applied back on the loop, so no other
locking is needed.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from signage.attribution.category import CategoryAggregator
from signage.demographics import age_category, round_age
from signage.errors import InferenceFailure
from signage.recognition.matcher import DescriptorMatcher
from signage.recognition.registration import RegistrationCoordinator
from signage.types import CachedBox, DetectionObservation, FaceDetection, MatchResult

LOGGER = logging.getLogger("signage.pipeline.scheduler")

DEFAULT_DETECTION_INTERVAL_MS = 200.0
UNMATCHED_LABEL = "registering..."
UNKNOWN_LABEL = "unknown"

Detector = Callable[[Any], Awaitable[Sequence[FaceDetection]]]
Renderer = Callable[[Any, Sequence[CachedBox]], None]


def wall_clock_ms() -> float:
    return time.time() * 1000.0


class SchedulerState(str, enum.Enum):
    WAITING_FOR_SOURCE = "waiting_for_source"
    IDLE = "idle"
    WAITING = "waiting"
    INFERRING = "inferring"


class TickAction(str, enum.Enum):
    SKIPPED = "skipped"
    REDRAW_BUSY = "redraw_busy"
    REDRAW_WAITING = "redraw_waiting"
    DISPATCHED = "dispatched"


class DetectionScheduler:
    """Drives inference, matching, registration and aggregation from display ticks."""

    def __init__(
        self,
        detect: Detector,
        matcher: DescriptorMatcher,
        registrar: RegistrationCoordinator,
        aggregator: CategoryAggregator,
        renderer: Optional[Renderer] = None,
        interval_ms: float = DEFAULT_DETECTION_INTERVAL_MS,
        clock: Callable[[], float] = wall_clock_ms,
    ) -> None:
        self._detect = detect
        self.matcher = matcher
        self.registrar = registrar
        self.aggregator = aggregator
        self.renderer = renderer
        self.interval_ms = interval_ms
        self._clock = clock
        self._state = SchedulerState.WAITING_FOR_SOURCE
        self._processing = False
        self._last_detection_ms: Optional[float] = None
        self._cached_boxes: Tuple[CachedBox, ...] = ()
        self._inference_task: Optional[asyncio.Task] = None
        self.batches_completed = 0
        self.batches_failed = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def processing(self) -> bool:
        return self._processing

    @property
    def cached_boxes(self) -> Tuple[CachedBox, ...]:
        return self._cached_boxes

    @property
    def inference_task(self) -> Optional[asyncio.Task]:
        return self._inference_task

    def tick(self, frame: Optional[Any]) -> TickAction:
        """Handle one display refresh; ``frame`` is None while the source is not ready."""
        if frame is None:
            if not self._processing:
                self._state = SchedulerState.WAITING_FOR_SOURCE
            return TickAction.SKIPPED

        if self._processing:
            self._redraw(frame)
            return TickAction.REDRAW_BUSY

        now = self._clock()
        if self._last_detection_ms is not None and now - self._last_detection_ms < self.interval_ms:
            self._state = SchedulerState.WAITING
            self._redraw(frame)
            return TickAction.REDRAW_WAITING

        self._processing = True
        self._state = SchedulerState.INFERRING
        self._last_detection_ms = now
        self._inference_task = asyncio.get_running_loop().create_task(self._run_inference(frame))
        self._redraw(frame)
        return TickAction.DISPATCHED

    def _redraw(self, frame: Any) -> None:
        if self.renderer is not None:
            self.renderer(frame, self._cached_boxes)

    async def _run_inference(self, frame: Any) -> None:
        try:
            faces = await self._detect(frame)
            self._apply_batch(faces or ())
        except Exception as exc:  # any inference/batch error only drops this batch
            self.batches_failed += 1
            failure = exc if isinstance(exc, InferenceFailure) else InferenceFailure(str(exc))
            LOGGER.error("Detection error, batch dropped: %s", failure, exc_info=exc)
        else:
            self.batches_completed += 1
        finally:
            self._processing = False
            self._state = SchedulerState.IDLE

    def _apply_batch(self, faces: Sequence[FaceDetection]) -> None:
        """Replace the cache with one box per face and feed the aggregator.

        A completion that lands after a newer dispatch still overwrites the
        cache; there is no generation check.
        """
        boxes: List[CachedBox] = []
        observations: List[DetectionObservation] = []
        for face in faces:
            try:
                match: Optional[MatchResult] = self.matcher.match(face.descriptor)
            except ValueError as exc:
                # not comparable with the snapshot; never registered either
                LOGGER.warning("Face left unmatched: %s", exc)
                match = None
            age = round_age(face.age)
            bracket = age_category(age)
            if bracket is not None:
                observations.append(
                    DetectionObservation(
                        age=age,
                        category=bracket.category,
                        age_group=bracket.age_group,
                        gender=face.gender,
                        timestamp_ms=self._clock(),
                    )
                )
            if match is None:
                label, score = UNKNOWN_LABEL, 0.0
            elif self.matcher.is_recognized(match):
                label, score = match.identity.id, match.distance  # type: ignore[union-attr]
            else:
                label, score = UNMATCHED_LABEL, 0.0
                self.registrar.submit(face.descriptor)
            boxes.append(
                CachedBox(
                    bbox=face.bbox,
                    label=label,
                    score=score,
                    age=face.age,
                    gender=face.gender,
                    gender_probability=face.gender_probability,
                    category=bracket,
                )
            )
        self._cached_boxes = tuple(boxes)
        self.aggregator.aggregate(observations)
        LOGGER.debug("Batch applied: %d faces, %d categorised", len(boxes), len(observations))
