"""Concurrency-safe, on-disk record store for principals and resources.

This module introduces a *narrow* persistence interface
(:class:`RecordStore`) and a JSON-file implementation
(:class:`DiskRecordStore`).  The design follows these goals:

* **Atomicity** – writes use *temp-file + os.replace*, so a token is never
  visible without its matching expiry.
* **Concurrency** – every read-modify-write of a record holds an advisory
  lock file for that record.
* **Upsert by natural key** – principals are keyed by their external id,
  resources by their external resource id.  Local ids and ``created_at``
  survive every upsert.
* **Filename safety** – externally supplied identifiers are hashed before
  hitting the filesystem.

Environment variables
---------------------
PAGE_TOKENS_STORAGE_DIR
    Base directory for all persisted data.
    Defaults to ``~/.page-token-sync/store`` when unset.
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import asdict, fields as dc_fields
from hashlib import sha256
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from page_token_sync.core.clock import Clock, default_clock, now_seconds
from page_token_sync.core.models import Principal, Resource

_LOG = logging.getLogger("page-token-sync.core.store")

# Columns the store owns; callers may not set them through ``fields``.
_MANAGED = frozenset({"id", "created_at", "updated_at"})
_PRINCIPAL_FIELDS = (
    frozenset(f.name for f in dc_fields(Principal)) - _MANAGED - {"external_id"}
)
_RESOURCE_FIELDS = (
    frozenset(f.name for f in dc_fields(Resource)) - _MANAGED - {"resource_id"}
)

# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #


def _hash(text: str, length: int = 24) -> str:
    return sha256(text.encode()).hexdigest()[:length]


def _atomic_write(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, separators=(",", ":"), sort_keys=True)
    os.replace(tmp, path)  # atomic on POSIX


def _read_json(path: Path) -> dict | None:
    try:
        with path.open(encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return None


@contextmanager
def _file_lock(lock_path: Path, retries: int = 25, delay: float = 0.2) -> Iterator[None]:
    """Advisory file lock using ``os.O_EXCL`` temp-file creation."""
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    for attempt in range(retries + 1):
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_RDWR)
            os.close(fd)
            break  # acquired!
        except FileExistsError:
            if attempt == retries:
                raise TimeoutError(f"Could not acquire lock {lock_path}") from None
            time.sleep(delay)
    try:
        yield
    finally:
        lock_path.unlink(missing_ok=True)


def _check_fields(fields: Mapping[str, Any], allowed: frozenset[str], kind: str) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"unknown {kind} fields: {', '.join(sorted(unknown))}")


# --------------------------------------------------------------------------- #
# public interface                                                            #
# --------------------------------------------------------------------------- #


@runtime_checkable
class RecordStore(Protocol):
    """Minimal persistence contract for the synchronization core."""

    # ----- principals ------------------------------------------------------ #
    def upsert_principal(self, external_id: str, fields: Mapping[str, Any]) -> Principal: ...
    def find_principal(self, local_id: str) -> Principal | None: ...
    def find_principal_by_external_id(self, external_id: str) -> Principal | None: ...

    # ----- resources ------------------------------------------------------- #
    def upsert_resource(self, resource_id: str, fields: Mapping[str, Any]) -> Resource: ...
    def find_resource(self, resource_id: str) -> Resource | None: ...
    def list_resources(self) -> list[Resource]: ...
    def delete_resource(self, resource_id: str) -> bool: ...


# --------------------------------------------------------------------------- #
# Disk implementation                                                         #
# --------------------------------------------------------------------------- #


class DiskRecordStore(RecordStore):
    """JSON-file implementation of :class:`RecordStore`."""

    def __init__(
        self,
        base_dir: str | os.PathLike | None = None,
        *,
        clock: Clock = default_clock,
    ) -> None:
        self.base_dir = Path(
            base_dir
            or os.getenv("PAGE_TOKENS_STORAGE_DIR")
            or Path.home() / ".page-token-sync" / "store"
        ).expanduser()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.clock = clock

    # ---------------- principals ----------------------------------------- #
    def _principal_path(self, local_id: str) -> Path:
        return self.base_dir / "principals" / f"{_hash(local_id)}.json"

    def _principal_index_path(self, external_id: str) -> Path:
        return self.base_dir / "principals" / "by-external" / f"{_hash(external_id)}.json"

    def upsert_principal(self, external_id: str, fields: Mapping[str, Any]) -> Principal:
        _check_fields(fields, _PRINCIPAL_FIELDS, "principal")
        index = self._principal_index_path(external_id)
        with _file_lock(index.with_suffix(".lock")):
            now = now_seconds(self.clock)
            existing = self.find_principal_by_external_id(external_id)
            if existing is None:
                data: dict[str, Any] = {
                    "id": uuid.uuid4().hex,
                    "external_id": external_id,
                    "created_at": now,
                    "contact": None,
                }
            else:
                data = asdict(existing)
            data.update(fields)
            data["updated_at"] = now
            record = Principal(**data)
            _atomic_write(self._principal_path(record.id), asdict(record))
            if existing is None:
                _atomic_write(index, {"id": record.id})
        _LOG.debug(
            "Upserted principal id=%s created=%s", record.id, existing is None
        )
        return record

    def find_principal(self, local_id: str) -> Principal | None:
        data = _read_json(self._principal_path(local_id))
        if data is None or data.get("id") != local_id:
            return None
        return Principal(**data)

    def find_principal_by_external_id(self, external_id: str) -> Principal | None:
        ref = _read_json(self._principal_index_path(external_id))
        if ref is None:
            return None
        return self.find_principal(ref["id"])

    # ---------------- resources ------------------------------------------ #
    def _resource_path(self, resource_id: str) -> Path:
        return self.base_dir / "resources" / f"{_hash(resource_id)}.json"

    def upsert_resource(self, resource_id: str, fields: Mapping[str, Any]) -> Resource:
        _check_fields(fields, _RESOURCE_FIELDS, "resource")
        path = self._resource_path(resource_id)
        with _file_lock(path.with_suffix(".lock")):
            now = now_seconds(self.clock)
            data = _read_json(path)
            created = data is None
            if created:
                data = {
                    "id": uuid.uuid4().hex,
                    "resource_id": resource_id,
                    "created_at": now,
                }
            data.update(fields)
            data["updated_at"] = now
            record = Resource(**data)
            _atomic_write(path, asdict(record))
        _LOG.debug("Upserted resource id=%s created=%s", record.id, created)
        return record

    def find_resource(self, resource_id: str) -> Resource | None:
        data = _read_json(self._resource_path(resource_id))
        return Resource(**data) if data is not None else None

    def list_resources(self) -> list[Resource]:
        resdir = self.base_dir / "resources"
        if not resdir.exists():
            return []
        records: list[Resource] = []
        for p in resdir.glob("*.json"):
            data = _read_json(p)
            if data is None:  # deleted between glob and read
                continue
            records.append(Resource(**data))
        records.sort(key=lambda r: (r.created_at, r.resource_id))
        return records

    def delete_resource(self, resource_id: str) -> bool:
        path = self._resource_path(resource_id)
        with _file_lock(path.with_suffix(".lock")):
            if not path.exists():
                return False
            path.unlink()
        _LOG.debug("Deleted resource file %s", path.name)
        return True


# --------------------------------------------------------------------------- #
# Convenience – default singleton                                            #
# --------------------------------------------------------------------------- #

_default_store: DiskRecordStore | None = None


def default_store() -> DiskRecordStore:
    """Return a process-wide singleton :class:`DiskRecordStore`."""
    global _default_store  # noqa: PLW0603
    if _default_store is None:
        _default_store = DiskRecordStore()
    return _default_store
