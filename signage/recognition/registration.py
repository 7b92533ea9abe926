"""Rate-limited, de-duplicated registration of unmatched faces as new identities."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Optional, Sequence, Set, Tuple

from signage.errors import InvalidPayload, StoreUnavailable
from signage.recognition.matcher import DescriptorMatcher
from signage.store.identity_store import IdentityStore
from signage.types import Descriptor, Identity, as_descriptor

LOGGER = logging.getLogger("signage.recognition.registration")

DEFAULT_COOLDOWN_MS = 3000.0


def wall_clock_ms() -> float:
    return time.time() * 1000.0


@dataclass(frozen=True)
class RegistrationOutcome:
    """Result reported by one registration task."""

    identity_id: Optional[str]
    registered: bool
    identities: Tuple[Identity, ...] = field(default=())
    error: Optional[str] = None


class RegistrationCoordinator:
    """Turns unmatched descriptors into durable identities.

    At most one registration starts per cooldown window, and an id that is
    already in flight is never submitted twice. Every store round trip runs in
    its own task; failures stay inside the task and leave the matcher's
    snapshot at its last-known-good value.
    """

    def __init__(
        self,
        store: IdentityStore,
        matcher: DescriptorMatcher,
        cooldown_ms: float = DEFAULT_COOLDOWN_MS,
        clock: Callable[[], float] = wall_clock_ms,
        on_registered: Optional[Callable[[RegistrationOutcome], None]] = None,
    ) -> None:
        self.store = store
        self.matcher = matcher
        self.cooldown_ms = cooldown_ms
        self._clock = clock
        self._on_registered = on_registered
        self._last_registration_ms: Optional[float] = None
        self._in_flight: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self.outcomes: Deque[RegistrationOutcome] = deque(maxlen=100)

    @property
    def in_flight(self) -> Set[str]:
        return set(self._in_flight)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def refresh(self) -> bool:
        """Reload the matcher snapshot from the store.

        Returns False, keeping the previous snapshot, when the store is
        unreachable or its records cannot be stacked.
        """
        try:
            identities = await self.store.list_identities()
        except StoreUnavailable as exc:
            LOGGER.error("Failed loading identities: %s", exc)
            return False
        return self._replace_snapshot(identities)

    def _replace_snapshot(self, identities: Sequence[Identity]) -> bool:
        try:
            self.matcher.replace_snapshot(identities)
        except ValueError as exc:
            LOGGER.error("Identity snapshot rejected, keeping %d identities: %s", len(self.matcher.identities), exc)
            return False
        return True

    def submit(self, descriptor: Sequence[float]) -> Optional[asyncio.Task]:
        """Start a registration for ``descriptor`` unless the cooldown is active.

        Must be called from the event loop thread. The cooldown timestamp is set
        before any I/O so a burst of unmatched faces starts a single task.
        """
        now = self._clock()
        if self._last_registration_ms is not None and now - self._last_registration_ms < self.cooldown_ms:
            LOGGER.debug(
                "Registration skipped: %.0f ms since last attempt (cooldown %.0f ms)",
                now - self._last_registration_ms,
                self.cooldown_ms,
            )
            return None
        self._last_registration_ms = now
        task = asyncio.get_running_loop().create_task(self._register(as_descriptor(descriptor)))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    async def _register(self, descriptor: Descriptor) -> RegistrationOutcome:
        try:
            identity_id = await self.store.allocate_identity()
        except StoreUnavailable as exc:
            LOGGER.error("Register new user failed: %s", exc)
            return RegistrationOutcome(identity_id=None, registered=False, error=str(exc))

        if identity_id in self._in_flight:
            LOGGER.warning("Identity %s already in flight; dropping duplicate registration", identity_id)
            return RegistrationOutcome(identity_id=identity_id, registered=False, error="in flight")

        self._in_flight.add(identity_id)
        try:
            await self.store.append_descriptor(identity_id, descriptor)
            identities = await self.store.list_identities()
        except (StoreUnavailable, InvalidPayload) as exc:
            LOGGER.error("Save failed for %s: %s", identity_id, exc)
            return RegistrationOutcome(identity_id=identity_id, registered=False, error=str(exc))
        finally:
            self._in_flight.discard(identity_id)

        if not self._replace_snapshot(identities):
            return RegistrationOutcome(
                identity_id=identity_id,
                registered=False,
                identities=tuple(identities),
                error="inconsistent descriptor lengths",
            )

        LOGGER.info(
            "Registered %s (%d users: %s)",
            identity_id,
            len(identities),
            ", ".join(identity.id for identity in identities),
        )
        return RegistrationOutcome(identity_id=identity_id, registered=True, identities=tuple(identities))

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Registration task crashed: %s", exc, exc_info=exc)
            return
        outcome = task.result()
        self.outcomes.append(outcome)
        if outcome.registered and self._on_registered is not None:
            self._on_registered(outcome)

    async def drain(self) -> None:
        """Wait for every registration started so far to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
