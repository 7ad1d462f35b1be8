"""
Identity association store
==========================
Key→value data attached to physical item records, keyed by
encode_key(identity, suffix). The real inventory system is injected; the
in-memory store backs tests and the demo server.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Optional, Protocol, Tuple

from specimen_guide.identity import (
    SCANNED_IMAGE_UPLOAD_ID, TECH_CALL, TECH_CALL_CATEGORY, SpecimenIdentity, encode_key,
)


class AssociationStore(Protocol):
    def get(self, item: Hashable, key: str) -> Optional[Any]: ...

    def set(self, item: Hashable, key: str, value: Any) -> None: ...


class InMemoryAssociationStore:
    def __init__(self):
        self._data: Dict[Tuple[Hashable, str], Any] = {}

    def get(self, item: Hashable, key: str) -> Optional[Any]:
        return self._data.get((item, key))

    def set(self, item: Hashable, key: str, value: Any) -> None:
        self._data[(item, key)] = value

    def keys_for(self, item: Hashable):
        return [key for (owner, key) in self._data if owner == item]


@dataclass(frozen=True)
class UploadHandle:
    """Opaque reference returned by the upload service. Content is never read."""
    id: int
    name: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


def record_tech_call(store: AssociationStore, item: Hashable, identity: SpecimenIdentity,
                     call: str, category: Optional[str] = None):
    store.set(item, encode_key(identity, TECH_CALL), call)
    if category is not None:
        store.set(item, encode_key(identity, TECH_CALL_CATEGORY), category)


def record_scanned_image(store: AssociationStore, item: Hashable, identity: SpecimenIdentity,
                         upload: UploadHandle):
    store.set(item, encode_key(identity, SCANNED_IMAGE_UPLOAD_ID), upload.id)
