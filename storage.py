import asyncio
import json
import random
import string
import time
from pathlib import Path
from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

logger = structlog.get_logger()

RecordT = TypeVar("RecordT", bound=BaseModel)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_id(prefix: str) -> str:
    """Timestamp plus a short random suffix, e.g. ``txn_1718000000000_k3j9x0a1b``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class JsonFileStore(Generic[RecordT]):
    """Keyed record collection mirrored to a single JSON array file.

    The whole file is read once on construction and rewritten on every
    mutation. Read and write failures are logged, never raised: an
    unreadable file starts the store empty, invalid entries are skipped,
    and a failed write keeps the in-memory change, leaving memory and disk
    out of step until the next good write.

    Subclasses set ``model`` (record type), ``key_field`` (business key
    used by :meth:`find_by_key`) and ``id_prefix``.
    """

    model: Type[RecordT]
    key_field: str
    id_prefix: str = "rec"

    def __init__(self, file_path):
        self.file_path = Path(file_path)
        self.records: Dict[str, RecordT] = {}
        self.lock = asyncio.Lock()
        self._load()

    def _load(self) -> None:
        if not self.file_path.exists():
            return
        try:
            raw = json.loads(self.file_path.read_text(encoding="utf-8"))
            if not isinstance(raw, list):
                raise ValueError("expected a JSON array")
        except (OSError, ValueError) as e:
            logger.error(
                "Error loading records",
                store=self.__class__.__name__,
                path=str(self.file_path),
                error=str(e)
            )
            return

        records = []
        for position, item in enumerate(raw):
            try:
                records.append(self.model.model_validate(item))
            except ValidationError as e:
                # One bad entry must not cost the rest of the file
                logger.error(
                    "Skipping invalid record",
                    store=self.__class__.__name__,
                    path=str(self.file_path),
                    position=position,
                    error=str(e)
                )
        self.records = {record.id: record for record in records}
        logger.debug("Records loaded", store=self.__class__.__name__, count=len(self.records))

    def _save(self) -> None:
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            payload = [record.model_dump(mode="json") for record in self.records.values()]
            self.file_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except (OSError, TypeError) as e:
            # In-memory state is kept; disk catches up on the next successful write
            logger.error(
                "Error saving records",
                store=self.__class__.__name__,
                path=str(self.file_path),
                error=str(e)
            )

    async def create(self, fields: Dict[str, Any]) -> RecordT:
        values = {k: v for k, v in fields.items() if k != "id"}
        record = self.model(id=generate_id(self.id_prefix), **values)
        self.records[record.id] = record
        self._save()
        return record

    async def find_by_id(self, record_id: str) -> Optional[RecordT]:
        return self.records.get(record_id)

    async def find_by_key(self, value: Any) -> Optional[RecordT]:
        """Linear scan on the business key; first match wins."""
        for record in self.records.values():
            if getattr(record, self.key_field) == value:
                return record
        return None

    async def get_all(self) -> List[RecordT]:
        return list(self.records.values())

    async def update(self, record_id: str, partial: Dict[str, Any]) -> Optional[RecordT]:
        """Shallow-merge ``partial`` over the stored record. ``id`` cannot change.

        The merged record is validated before it replaces the stored one, so
        a bad partial raises ``ValidationError`` and leaves memory and disk
        untouched.
        """
        existing = self.records.get(record_id)
        if existing is None:
            return None

        changes = {k: v for k, v in partial.items() if k != "id"}
        updated = self.model.model_validate({**existing.model_dump(), **changes})
        self.records[record_id] = updated
        self._save()
        return updated

    async def delete(self, record_id: str) -> bool:
        if self.records.pop(record_id, None) is None:
            return False
        self._save()
        return True

    async def count(self) -> int:
        return len(self.records)

    async def find_or_create(self, key_value: Any, fields: Dict[str, Any]) -> Tuple[RecordT, bool]:
        """Return the record holding ``key_value`` or create it from ``fields``.

        Lookup and insert run under the store lock so two callers with the
        same business key end up with one record.
        """
        async with self.lock:
            existing = await self.find_by_key(key_value)
            if existing is not None:
                return existing, False
            record = await self.create({**fields, self.key_field: key_value})
            return record, True
