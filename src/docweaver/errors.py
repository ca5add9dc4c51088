from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

_SERVER_ERROR_SIGNATURE = re.compile(r"\b5\d\d\b")


class ErrorCode(StrEnum):
    INVALID_CONFIG = "INVALID_CONFIG"
    INPUT_NOT_FOUND = "INPUT_NOT_FOUND"
    GENERATION_FAILED = "GENERATION_FAILED"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    CACHE_CORRUPT = "CACHE_CORRUPT"


class DocWeaverError(Exception):
    """Raised for all expected failure conditions of a generation run.

    Caught by cli.py, logged, and turned into a non-zero exit status.
    Business logic lets it propagate: the cache keeps every unit that was
    already marked Done, so the next invocation resumes from the first
    pending unit.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable


class RemoteExecutionError(Exception):
    """Raised by the execution client when the remote service rejects a call.

    ``payload`` is the decoded response body when the service sent one;
    ``payload["error"]`` carries the service-side error detail.
    """

    def __init__(
        self,
        message: str,
        payload: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload
        self.status_code = status_code

    @property
    def detail(self) -> Any:
        if isinstance(self.payload, dict):
            return self.payload.get("error")
        return None

    @property
    def is_transient(self) -> bool:
        """True for server-side (5xx) failures worth retrying."""
        if self.status_code is not None:
            return 500 <= self.status_code < 600
        return bool(_SERVER_ERROR_SIGNATURE.search(self.message))
