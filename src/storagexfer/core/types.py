"""Shared types for storagexfer.

This module defines the value types used by both the transfer engine
and the persistent session store.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ObjectHandle:
    """Identifies a remote object.

    Attributes:
        bucket: Bucket name.
        name: Object name. Opaque path segment, may contain "/".
    """

    bucket: str
    name: str

    def __post_init__(self) -> None:
        """Reject empty identifiers."""
        if not self.bucket:
            raise ValueError("A bucket name must be specified")
        if not self.name:
            raise ValueError("A file name must be specified")

    @property
    def key(self) -> str:
        """Canonical string form, used as the session store key."""
        return f"{self.bucket}/{self.name}"

    def __str__(self) -> str:
        return self.key


@dataclass
class SessionRecord:
    """Persisted state for one in-flight resumable upload.

    Attributes:
        key: Canonical object identifier (see ObjectHandle.key).
        uri: Resume URI returned by the server on session creation.
        created_at: Unix timestamp when the session was negotiated.
    """

    key: str
    uri: str
    created_at: float = field(default_factory=time.time)
