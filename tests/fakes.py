"""Fake collaborators shared by the scheduler, registration and runner tests."""

import asyncio
from typing import List, Optional, Sequence

from signage.errors import StoreUnavailable
from signage.store.identity_store import AppendResult, IdentityStore
from signage.types import Identity, as_descriptor


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeIdentityStore(IdentityStore):
    """In-memory store recording every call made against it."""

    def __init__(self, identities: Sequence[Identity] = ()) -> None:
        self.records: List[Identity] = list(identities)
        self.calls: List[tuple] = []
        self.fixed_id: Optional[str] = None
        self.fail_allocate = False
        self.fail_append = False
        self.fail_list = False
        self.append_gate: Optional[asyncio.Event] = None
        self.closed = False

    async def list_identities(self) -> List[Identity]:
        self.calls.append(("list",))
        if self.fail_list:
            raise StoreUnavailable("list failed")
        return list(self.records)

    async def allocate_identity(self) -> str:
        self.calls.append(("allocate",))
        if self.fail_allocate:
            raise StoreUnavailable("allocate failed")
        new_id = self.fixed_id or f"user{len(self.records) + 1}"
        if all(identity.id != new_id for identity in self.records):
            self.records.append(Identity(id=new_id))
        return new_id

    async def append_descriptor(self, identity_id, descriptor) -> AppendResult:
        self.calls.append(("append", identity_id, as_descriptor(descriptor)))
        if self.append_gate is not None:
            await self.append_gate.wait()
        if self.fail_append:
            raise StoreUnavailable("append failed")
        for index, identity in enumerate(self.records):
            if identity.id == identity_id:
                self.records[index] = identity.with_descriptor(descriptor)
                break
        else:
            self.records.append(Identity(id=identity_id, descriptors=(as_descriptor(descriptor),)))
        return AppendResult(ok=True, total_identity_count=len(self.records))

    async def aclose(self) -> None:
        self.closed = True

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


class ScriptedDetector:
    """Async detector returning queued results; ``gate`` holds calls until set."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls: List[object] = []
        self.gate: Optional[asyncio.Event] = None

    async def detect(self, frame):
        self.calls.append(frame)
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if self.results else []
        if isinstance(result, Exception):
            raise result
        return result


class FakeVideoSource:
    """Stands in for VideoSource: yields the queued frames, then None."""

    def __init__(self, frames=(), opens: bool = True) -> None:
        self.frames = list(frames)
        self.opens = opens
        self.last_error: Optional[str] = None if opens else "Cannot access camera: no device"
        self.released = False

    def open(self, strict: bool = False) -> bool:
        return self.opens

    def read(self):
        return self.frames.pop(0) if self.frames else None

    def release(self) -> None:
        self.released = True
