"""Local invoice store: the whole saved collection under one namespaced key.

Every write re-serializes and replaces the full collection. The backing
medium is a key-scoped blob backend (a JSON file per key on disk, or an
in-memory dict for tests and throwaway sessions).
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from filelock import FileLock

from invoice_craft import config as _config
from invoice_craft.models.invoice import Invoice
from invoice_craft.services.exceptions import NotFoundError, StorageError

logger = logging.getLogger(__name__)


class BlobBackend(Protocol):
    def read(self, key: str) -> str | None: ...

    def write(self, key: str, text: str) -> None: ...

    def backup(self, key: str) -> str | None: ...

    def list_backups(self, key: str) -> list[str]: ...

    def lock(self, key: str) -> AbstractContextManager[Any]: ...


class FileBackend:
    """One ``<key>.json`` file per key inside *directory*."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str) -> str | None:
        p = self.path(key)
        if not p.exists():
            return None
        return p.read_text(encoding="utf-8")

    def write(self, key: str, text: str) -> None:
        p = self.path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_suffix(".tmp")
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, p)

    def backup(self, key: str) -> str | None:
        """Rename a corrupt file to a timestamped backup before it gets overwritten."""
        p = self.path(key)
        if not p.exists():
            return None
        ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
        backup = p.with_name(f"{p.name}.corrupt.{ts}")
        p.rename(backup)
        return str(backup)

    def list_backups(self, key: str) -> list[str]:
        p = self.path(key)
        if not p.parent.exists():
            return []
        return sorted(str(b) for b in p.parent.glob(f"{p.name}.corrupt.*"))

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        """Hold an exclusive file lock during read-modify-write."""
        p = self.path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(p.with_suffix(".lock")):
            yield


class MemoryBackend:
    """Process-local backend; nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.blobs: dict[str, str] = dict(initial or {})
        self.backups: dict[str, list[str]] = {}

    def read(self, key: str) -> str | None:
        return self.blobs.get(key)

    def write(self, key: str, text: str) -> None:
        self.blobs[key] = text

    def backup(self, key: str) -> str | None:
        text = self.blobs.pop(key, None)
        if text is None:
            return None
        saved = self.backups.setdefault(key, [])
        saved.append(text)
        return f"{key}.corrupt.{len(saved)}"

    def list_backups(self, key: str) -> list[str]:
        return [f"{key}.corrupt.{n}" for n in range(1, len(self.backups.get(key, [])) + 1)]

    def lock(self, key: str) -> AbstractContextManager[Any]:
        return nullcontext()


@dataclass
class LoadResult:
    """Outcome of reading the collection.

    ``corrupt`` is True when a payload existed but could not be parsed; the
    store then continues with an empty collection and ``backup`` names the
    preserved copy of the unreadable payload.
    """

    invoices: list[Invoice]
    corrupt: bool = False
    backup: str | None = None


@dataclass
class StoreHealth:
    ok: bool
    count: int
    corrupt_backups: list[str] = field(default_factory=list)


class InvoiceStore:
    """Collection of invoices keyed by ``id``, stored under one backend key."""

    def __init__(self, backend: BlobBackend, key: str = _config.STORAGE_KEY) -> None:
        self.backend = backend
        self.key = key
        self._open = False
        self.last_load: LoadResult | None = None

    # --- lifecycle ---

    def open(self) -> InvoiceStore:
        self._open = True
        return self

    def close(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> InvoiceStore:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _check_open(self) -> None:
        if not self._open:
            raise StorageError("Invoice store is closed")

    # --- serialization ---

    def _parse(self, text: str) -> list[Invoice]:
        data = json.loads(text)
        if not isinstance(data, list):
            raise ValueError("stored payload is not a list")
        return [Invoice.from_dict(d) for d in data]

    def _discard_unreadable(self) -> LoadResult:
        backup = self.backend.backup(self.key)
        logger.warning(
            "Stored invoices under %r are unreadable; continuing with an empty "
            "collection (backup: %s)",
            self.key,
            backup,
        )
        return LoadResult(invoices=[], corrupt=True, backup=backup)

    def _read(self) -> LoadResult:
        try:
            text = self.backend.read(self.key)
        except UnicodeDecodeError:
            result = self._discard_unreadable()
        except OSError as exc:
            raise StorageError(f"Failed to read invoices: {exc}") from exc
        else:
            if text is None:
                result = LoadResult(invoices=[])
            else:
                try:
                    result = LoadResult(invoices=self._parse(text))
                except (ValueError, KeyError, TypeError):
                    result = self._discard_unreadable()
        self.last_load = result
        return result

    def _write(self, invoices: list[Invoice]) -> None:
        try:
            text = json.dumps([inv.to_dict() for inv in invoices], indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Failed to serialize invoices: {exc}") from exc
        try:
            self.backend.write(self.key, text + "\n")
        except OSError as exc:
            logger.error("Failed to write invoices under %r", self.key, exc_info=True)
            raise StorageError(f"Failed to save invoices: {exc}") from exc

    # --- operations ---

    def load(self) -> LoadResult:
        """Read the collection, reporting whether a corrupt payload was discarded."""
        self._check_open()
        with self.backend.lock(self.key):
            return self._read()

    def list(self) -> list[Invoice]:
        """All saved invoices in storage order (not necessarily creation order)."""
        return self.load().invoices

    def get_by_id(self, invoice_id: str) -> Invoice | None:
        return next((inv for inv in self.list() if inv.id == invoice_id), None)

    def require(self, invoice_id: str) -> Invoice:
        """Like get_by_id, but raises NotFoundError on a miss."""
        invoice = self.get_by_id(invoice_id)
        if invoice is None:
            raise NotFoundError(invoice_id)
        return invoice

    def upsert(self, invoice: Invoice) -> None:
        """Replace the entry with the same id in place, or append it."""
        self._check_open()
        with self.backend.lock(self.key):
            invoices = self._read().invoices
            index = next((i for i, inv in enumerate(invoices) if inv.id == invoice.id), None)
            if index is None:
                invoices.append(invoice)
            else:
                invoices[index] = invoice
            self._write(invoices)

    def delete(self, invoice_id: str) -> bool:
        """Remove the entry with *invoice_id*. Returns False (and writes nothing) if absent."""
        self._check_open()
        with self.backend.lock(self.key):
            invoices = self._read().invoices
            remaining = [inv for inv in invoices if inv.id != invoice_id]
            if len(remaining) == len(invoices):
                return False
            self._write(remaining)
            return True

    def health(self) -> StoreHealth:
        """Probe the stored payload for corruption without modifying anything."""
        try:
            text = self.backend.read(self.key)
        except (OSError, UnicodeDecodeError):
            text = None
            ok = False
        else:
            ok = True
        count = 0
        if text is not None:
            try:
                count = len(self._parse(text))
            except (ValueError, KeyError, TypeError):
                ok = False
        return StoreHealth(ok=ok, count=count, corrupt_backups=self.backend.list_backups(self.key))


def open_store(data_dir: Path | None = None) -> InvoiceStore:
    """Open a file-backed store in *data_dir* (default: the configured data dir)."""
    return InvoiceStore(FileBackend(data_dir or _config.get_data_dir())).open()
