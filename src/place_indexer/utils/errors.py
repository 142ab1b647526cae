from typing import Any


class PlaceDataError(Exception):
    """A single source row could not be turned into documents."""

    def __init__(self, source: str, place_id: int | None, reason: str):
        self.source = source
        self.place_id = place_id
        self.reason = reason
        super().__init__(f"Bad data in '{source}' for place {place_id}: {reason}")


class DumpFormatError(Exception):
    """The dump file header does not identify a readable dump."""

    def __init__(self, field: str, found: Any, expected: Any):
        self.field = field
        self.found = found
        self.expected = expected
        super().__init__(
            f"Invalid dump file: header field '{field}' is {found!r}, expected {expected!r}"
        )


class SourceConnectionError(Exception):
    """The relational source cannot be reached. Aborts the running import or update."""

    def __init__(self, source: str, original: Exception | None = None):
        self.source = source
        self.original = original
        msg = f"Cannot access source database '{source}'"
        if original is not None:
            msg += f": {original}"
        super().__init__(msg)


class UnknownBackendError(ValueError):
    def __init__(self, name: str, known: list[str]):
        self.name = name
        self.known = known
        super().__init__(f"Unknown backend '{name}'. Known backends: {known}")
