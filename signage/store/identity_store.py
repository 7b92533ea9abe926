"""Identity store backends: a local JSON file and the HTTP identity service."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence

import httpx

from signage.errors import InvalidPayload, StoreUnavailable
from signage.io_utils import dump_json, ensure_dir, load_json
from signage.types import Identity, as_descriptor

LOGGER = logging.getLogger("signage.store.identity")

ID_PREFIX = "user"


@dataclass(frozen=True)
class AppendResult:
    ok: bool
    total_identity_count: int


def _validate_append(identity_id: Optional[str], descriptor: Optional[Sequence[float]]) -> None:
    if not identity_id or descriptor is None or len(descriptor) == 0:
        raise InvalidPayload("Invalid payload: both id and descriptor are required")


class IdentityStore(ABC):
    """Operations the detection loop consumes from whichever store is configured."""

    @abstractmethod
    async def list_identities(self) -> List[Identity]:
        ...

    @abstractmethod
    async def allocate_identity(self) -> str:
        """Create an identity with no descriptors and return its id."""

    @abstractmethod
    async def append_descriptor(self, identity_id: str, descriptor: Sequence[float]) -> AppendResult:
        ...

    async def aclose(self) -> None:
        return None


class JsonFileIdentityStore(IdentityStore):
    """Identities persisted as a JSON list of ``{"id", "descriptors"}`` records.

    The synchronous methods are what the HTTP service calls from its worker
    threads; the async methods push the same work off the event loop.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        try:
            ensure_dir(self.path.parent)
            if not self.path.exists():
                dump_json(self.path, [])
                LOGGER.info("Created empty identity file %s", self.path)
        except OSError as exc:
            raise StoreUnavailable(f"Cannot initialise identity file {self.path}: {exc}") from exc

    def _read_records(self) -> List[dict]:
        try:
            data = load_json(self.path)
        except (OSError, ValueError) as exc:
            raise StoreUnavailable(f"Cannot read identities from {self.path}: {exc}") from exc
        if not isinstance(data, list):
            raise StoreUnavailable(f"Identity file {self.path} does not contain a list")
        return data

    def _write_records(self, records: List[dict]) -> None:
        try:
            dump_json(self.path, records, indent=2)
        except OSError as exc:
            raise StoreUnavailable(f"Cannot write identities to {self.path}: {exc}") from exc

    def load(self) -> List[Identity]:
        with self._lock:
            records = self._read_records()
        try:
            return [Identity.from_dict(record) for record in records]
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreUnavailable(f"Malformed identity record in {self.path}: {exc}") from exc

    def allocate(self) -> str:
        with self._lock:
            records = self._read_records()
            taken = {str(record.get("id")) for record in records}
            index = len(records) + 1
            new_id = f"{ID_PREFIX}{index}"
            while new_id in taken:
                index += 1
                new_id = f"{ID_PREFIX}{index}"
            records.append({"id": new_id, "descriptors": []})
            self._write_records(records)
        LOGGER.info("Allocated identity %s", new_id)
        return new_id

    def append(self, identity_id: Optional[str], descriptor: Optional[Sequence[float]]) -> AppendResult:
        _validate_append(identity_id, descriptor)
        sample = list(as_descriptor(descriptor))
        with self._lock:
            records = self._read_records()
            existing = next((record for record in records if record.get("id") == identity_id), None)
            if existing is None:
                records.append({"id": identity_id, "descriptors": [sample]})
            else:
                existing.setdefault("descriptors", [])
                if existing["descriptors"] is None:
                    existing["descriptors"] = []
                existing["descriptors"].append(sample)
            self._write_records(records)
            total = len(records)
        LOGGER.debug("Appended descriptor to %s (identities=%d)", identity_id, total)
        return AppendResult(ok=True, total_identity_count=total)

    async def list_identities(self) -> List[Identity]:
        return await asyncio.to_thread(self.load)

    async def allocate_identity(self) -> str:
        return await asyncio.to_thread(self.allocate)

    async def append_descriptor(self, identity_id: str, descriptor: Sequence[float]) -> AppendResult:
        return await asyncio.to_thread(self.append, identity_id, descriptor)


class HttpIdentityStore(IdentityStore):
    """Client for the identity service (``/users.json``, ``/register_new``, ``/save``)."""

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as exc:
            raise StoreUnavailable(f"{method} {path} failed: {exc}") from exc
        if response.status_code == 400:
            raise InvalidPayload(f"{method} {path} rejected: {response.text}")
        if response.status_code >= 400:
            raise StoreUnavailable(f"{method} {path} returned HTTP {response.status_code}")
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise StoreUnavailable(f"{method} {path} returned invalid JSON") from exc

    async def list_identities(self) -> List[Identity]:
        data = await self._request("GET", "/users.json")
        if not isinstance(data, list):
            raise StoreUnavailable("/users.json did not return a list")
        try:
            return [Identity.from_dict(record) for record in data]
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreUnavailable(f"Malformed identity record: {exc}") from exc

    async def allocate_identity(self) -> str:
        data = await self._request("POST", "/register_new")
        identity_id = data.get("id") if isinstance(data, dict) else None
        if not identity_id:
            raise StoreUnavailable("/register_new response carried no id")
        return str(identity_id)

    async def append_descriptor(self, identity_id: str, descriptor: Sequence[float]) -> AppendResult:
        _validate_append(identity_id, descriptor)
        data = await self._request(
            "POST",
            "/save",
            json={"id": identity_id, "descriptor": list(as_descriptor(descriptor))},
        )
        if not isinstance(data, dict):
            raise StoreUnavailable("/save returned an unexpected body")
        return AppendResult(ok=bool(data.get("ok")), total_identity_count=int(data.get("usersCount", 0)))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
