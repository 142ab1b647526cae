"""
JSON-lines dump files.

A dump starts with a header object, followed by one object per document:

    {"id": "Photon Dump Header", "version": "1.0.0", "importDate": "2024-01-01T10:00:00"}
    {"id": "1234", "document": {...}}
    {"id": "1234.1", "document": {...}}
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import sys
import time
from typing import IO, Any, Iterable, Optional

from ..model.address import AddressType
from ..model.names import PLACE_NAME_KINDS
from ..model.place import PlaceRecord
from ..settings import settings
from ..utils.errors import DumpFormatError
from .base import Importer, IndexBackend
from .serializer import CONTEXT, COUNTRYCODE, EXTRA, NAME, serialize_document

logger = logging.getLogger(__name__)

HEADER_ID = "Photon Dump Header"
FORMAT_VERSION = "1.0.0"

PROGRESS_INTERVAL = 50000


class JsonDumper(Importer):
    """Writes documents into a dump file instead of an index. `-` writes to stdout."""

    BACKEND = "json"

    def __init__(
        self,
        path: Path | str | None = None,
        extra_tags: Optional[Iterable[str]] = None,
        import_date: Optional[datetime] = None,
        stream: Optional[IO[str]] = None,
    ):
        self.extra_tags = list(settings.extra_tags if extra_tags is None else extra_tags)

        if stream is not None:
            self._out, self._owns_stream = stream, False
        elif str(path) == "-":
            self._out, self._owns_stream = sys.stdout, False
        else:
            target = Path(path if path is not None else settings.dump_path)
            target.parent.mkdir(parents=True, exist_ok=True)
            self._out, self._owns_stream = target.open("w", encoding="utf-8"), True

        import_date = import_date or datetime.now(timezone.utc)
        self._write({
            "id": HEADER_ID,
            "version": FORMAT_VERSION,
            "importDate": import_date.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S"),
        })

    def _write(self, obj: dict[str, Any]) -> None:
        self._out.write(json.dumps(obj, ensure_ascii=False))
        self._out.write("\n")

    def add(self, doc: PlaceRecord, object_id: int) -> None:
        self._write({"id": doc.uid(object_id), "document": serialize_document(doc, self.extra_tags)})

    def finish(self) -> None:
        if self._owns_stream:
            self._out.close()
        else:
            self._out.flush()


def _filter_names(names: dict[str, str], keep: set[str]) -> dict[str, str]:
    return {k: v for k, v in names.items() if k in keep}


def filter_document(
    document: dict[str, Any],
    languages: Optional[Iterable[str]] = None,
    extra_tags: Optional[Iterable[str]] = None,
) -> dict[str, Any]:
    """
    Reduce a dumped document to the given languages and extra tags.
    None disables the respective filter.
    """
    doc = dict(document)

    if languages is not None:
        keep = {"default", *PLACE_NAME_KINDS, *languages}
        for key in (NAME, CONTEXT, *(t.value for t in AddressType)):
            if isinstance(doc.get(key), dict):
                doc[key] = _filter_names(doc[key], keep)

    if extra_tags is not None and EXTRA in doc:
        extra = {k: v for k, v in doc[EXTRA].items() if k in set(extra_tags)}
        if extra:
            doc[EXTRA] = extra
        else:
            del doc[EXTRA]

    return doc


class JsonDumpReader:
    """Restores a dump file into an index backend."""

    def __init__(self, source: Path | str | IO[str], importer: IndexBackend):
        self.importer = importer
        if isinstance(source, (str, Path)):
            self._in, self._owns_stream = Path(source).open("r", encoding="utf-8"), True
        else:
            self._in, self._owns_stream = source, False
        self.import_date: Optional[datetime] = None

    def _next_object(self) -> Optional[dict[str, Any]]:
        for line in self._in:
            line = line.strip()
            if line:
                return json.loads(line)
        return None

    def read_header(self) -> datetime:
        """Check the header and return the import date of the data."""
        try:
            header = self._next_object()
        except json.JSONDecodeError as e:
            raise DumpFormatError("id", None, HEADER_ID) from e

        if not header or header.get("id") != HEADER_ID:
            raise DumpFormatError("id", header.get("id") if header else None, HEADER_ID)
        if header.get("version") != FORMAT_VERSION:
            raise DumpFormatError("version", header.get("version"), FORMAT_VERSION)

        import_date = header.get("importDate")
        if import_date is None:
            self.import_date = datetime.now(timezone.utc)
        else:
            self.import_date = datetime.fromisoformat(import_date).replace(tzinfo=timezone.utc)
        return self.import_date

    def read_data(
        self,
        country_codes: Optional[Iterable[str]] = None,
        languages: Optional[Iterable[str]] = None,
        extra_tags: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Import all documents following the header. Returns the number of
        documents handed to the backend.
        """
        countries = {c.upper() for c in country_codes or ()}
        languages = list(languages) if languages is not None else None
        extra_tags = list(extra_tags) if extra_tags is not None else None

        start = time.monotonic()
        total = 0
        try:
            while (record := self._next_object()) is not None:
                document = record["document"]
                if countries and str(document.get(COUNTRYCODE, "")).upper() not in countries:
                    continue

                self.importer.add_raw(filter_document(document, languages, extra_tags), str(record["id"]))
                total += 1

                if total % PROGRESS_INTERVAL == 0:
                    rate = total / max(time.monotonic() - start, 1e-6)
                    logger.info(f"Imported {total} documents [{rate:.1f}/second]")
        finally:
            if self._owns_stream:
                self._in.close()

        self.importer.finish()
        logger.info(f"Restored {total} documents from dump")
        return total
