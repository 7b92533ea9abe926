import asyncio

from fakes import FakeIdentityStore, FakeVideoSource, ScriptedDetector

from signage.config import KioskConfig
from signage.io_utils import load_json
from signage.pipeline.runner import (
    STATUS_ACTIVE,
    STATUS_LOADING,
    STATUS_READY_EMPTY,
    KioskRunner,
    run_frame_clock,
)
from signage.types import FaceDetection, Identity

FAST = KioskConfig(display_fps=1000.0, detection_interval_ms=1.0)


class RecordingScheduler:
    def __init__(self):
        self.frames = []

    def tick(self, frame):
        self.frames.append(frame)


def test_frame_clock_ticks_once_per_period_including_unready_frames():
    frames = [None, "f1", None, "f3"]
    scheduler = RecordingScheduler()
    readiness = []

    ticks = asyncio.run(
        run_frame_clock(
            lambda: frames.pop(0),
            scheduler,
            fps=1000.0,
            max_ticks=4,
            on_readiness=readiness.append,
        )
    )

    assert ticks == 4
    assert scheduler.frames == [None, "f1", None, "f3"]
    assert readiness == [False, True, False, True]


def test_frame_clock_stops_when_asked():
    scheduler = RecordingScheduler()
    ticks = asyncio.run(run_frame_clock(lambda: "f", scheduler, fps=1000.0, should_stop=lambda: len(scheduler.frames) >= 3))
    assert ticks == 3


def test_kiosk_runner_registers_and_publishes(tmp_path):
    config = KioskConfig(
        display_fps=1000.0,
        detection_interval_ms=1.0,
        state_file=str(tmp_path / "state.json"),
    )
    store = FakeIdentityStore()
    detector = ScriptedDetector(
        [FaceDetection(bbox=(0.0, 0.0, 10.0, 10.0), descriptor=(0.5, 0.5), age=12.0, gender="female")]
    )
    source = FakeVideoSource(frames=["frame"] * 5)
    statuses = []

    runner = KioskRunner(config, source, detector.detect, store, on_status=statuses.append)
    ticks = asyncio.run(runner.run(max_ticks=5))

    assert ticks == 5
    assert statuses[0] == STATUS_LOADING
    assert STATUS_READY_EMPTY in statuses
    assert statuses[-1].startswith(f"{STATUS_ACTIVE} (1 users: user1)")
    assert [identity.id for identity in runner.matcher.identities] == ["user1"]
    assert load_json(tmp_path / "state.json")["dominantAgeCategory"]["category"] == "Teen"
    assert store.closed
    assert source.released


def test_kiosk_runner_reports_unavailable_camera():
    source = FakeVideoSource(opens=False)
    statuses = []
    runner = KioskRunner(FAST, source, ScriptedDetector().detect, FakeIdentityStore(), on_status=statuses.append)

    asyncio.run(runner.run(max_ticks=2))

    assert statuses[-1].startswith("Cannot access camera")
    assert runner.scheduler.batches_completed == 0


def test_frame_clock_runs_idle_hook_on_missing_frames():
    frames = [None, "f1", None]
    idle = []

    asyncio.run(
        run_frame_clock(
            lambda: frames.pop(0),
            RecordingScheduler(),
            fps=1000.0,
            max_ticks=3,
            on_idle=lambda: idle.append(True),
        )
    )

    assert len(idle) == 2


def test_kiosk_runner_survives_store_with_mixed_descriptor_lengths():
    store = FakeIdentityStore(
        [
            Identity(id="user1", descriptors=((0.0, 0.0),)),
            Identity(id="user2", descriptors=((0.0, 0.0, 0.0),)),
        ]
    )
    detector = ScriptedDetector(
        [FaceDetection(bbox=(0.0, 0.0, 10.0, 10.0), descriptor=(0.5, 0.5), age=30.0, gender="male")]
    )
    statuses = []
    runner = KioskRunner(FAST, FakeVideoSource(frames=["frame"] * 3), detector.detect, store, on_status=statuses.append)

    ticks = asyncio.run(runner.run(max_ticks=3))

    assert ticks == 3
    assert STATUS_READY_EMPTY in statuses
    assert runner.matcher.identities == ()
    assert runner.scheduler.batches_failed == 0
    assert runner.aggregator.last_result.category == "Adults"
