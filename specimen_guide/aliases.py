"""
Layer 2 — Alias Graph (specimen provenance)
===========================================
Each stage manufactures output objects from its inputs: an extraction tube
E6-001 from raw sample 001, ten ligation tubes L1-001..L10-001 from one PCR
product, and so on. An AliasRecord links such a child to its single parent.

Records are write-once. Following parents from any object must end at a root
(the raw patient sample); a parent reference with no object behind it is a
data-integrity failure and is reported as BrokenChain.
"""

from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence, TypeVar

import structlog

from specimen_guide.errors import BrokenChain, DuplicateAlias, ProvenanceCycle
from specimen_guide.identity import SpecimenIdentity

logger = structlog.get_logger(__name__)

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


@dataclass(frozen=True)
class AliasRecord:
    child: SpecimenIdentity
    parent: Optional[SpecimenIdentity]   # None for a root specimen
    annotation: str = ""                 # human-facing, e.g. patient id

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def to_dict(self) -> dict:
        return {
            "child": self.child.to_dict(),
            "parent": self.parent.to_dict() if self.parent else None,
            "annotation": self.annotation,
        }


def group_by(items: Iterable[T], key_fn: Callable[[T], K]) -> "OrderedDict[K, List[T]]":
    """
    Group items by key_fn. Groups come out in first-seen key order and keep
    insertion order inside each group. No side effects.
    """
    groups: "OrderedDict[K, List[T]]" = OrderedDict()
    for item in items:
        groups.setdefault(key_fn(item), []).append(item)
    return groups


class AliasGraph:
    def __init__(self):
        self._records: Dict[SpecimenIdentity, AliasRecord] = {}
        self._children: Dict[SpecimenIdentity, List[SpecimenIdentity]] = {}

    def __contains__(self, identity: SpecimenIdentity) -> bool:
        return identity in self._records

    def __len__(self) -> int:
        return len(self._records)

    # ── Writes ─────────────────────────────────────────────────────────────

    def register_root(self, identity: SpecimenIdentity, annotation: str = "") -> AliasRecord:
        """Record a raw specimen that was not derived from anything."""
        if identity in self._records:
            raise DuplicateAlias(f"Specimen {identity!r} is already registered", identity)
        record = AliasRecord(identity, None, annotation)
        self._records[identity] = record
        logger.debug("root_registered", specimen=identity.tokens, annotation=annotation)
        return record

    def create_alias(self, child: SpecimenIdentity, parent: SpecimenIdentity,
                     annotation: str = "") -> AliasRecord:
        self._check_insert(child, parent)
        record = AliasRecord(child, parent, annotation)
        self._records[child] = record
        self._children.setdefault(parent, []).append(child)
        logger.info("alias_created", child=child.tokens, parent=parent.tokens,
                    annotation=annotation)
        return record

    def create_collection_aliases(self, children: Sequence[SpecimenIdentity],
                                  parent: SpecimenIdentity,
                                  annotation: str = "") -> List[AliasRecord]:
        """Alias a whole output set to one input; nothing is written if any child fails."""
        seen = set()
        for child in children:
            if child in seen:
                raise DuplicateAlias(f"Specimen {child!r} appears twice in the collection", child)
            seen.add(child)
            self._check_insert(child, parent)
        return [self.create_alias(child, parent, annotation) for child in children]

    def _check_insert(self, child: SpecimenIdentity, parent: SpecimenIdentity):
        if child in self._records:
            raise DuplicateAlias(f"An alias already exists for {child!r}", child)
        if child == parent:
            raise ProvenanceCycle(f"Specimen {child!r} cannot be its own parent", child)
        # walk up from the parent; stop at the first identity with no record
        cursor: Optional[SpecimenIdentity] = parent
        while cursor is not None and cursor in self._records:
            cursor = self._records[cursor].parent
            if cursor == child:
                raise ProvenanceCycle(
                    f"Aliasing {child!r} under {parent!r} would create a cycle", child)

    # ── Queries ────────────────────────────────────────────────────────────

    def get(self, identity: SpecimenIdentity) -> Optional[AliasRecord]:
        return self._records.get(identity)

    def parent_of(self, identity: SpecimenIdentity) -> Optional[SpecimenIdentity]:
        record = self._require(identity)
        return record.parent

    def children_of(self, identity: SpecimenIdentity) -> List[SpecimenIdentity]:
        return list(self._children.get(identity, []))

    def resolve_chain(self, identity: SpecimenIdentity) -> List[SpecimenIdentity]:
        """Provenance path, root first, ending at identity."""
        chain = [identity]
        record = self._require(identity)
        while record.parent is not None:
            parent = record.parent
            if parent not in self._records:
                logger.error("broken_chain", specimen=identity.tokens, missing=parent.tokens)
                raise BrokenChain(
                    f"{record.child!r} references parent {parent!r}, which has no record",
                    identity, missing=parent)
            chain.append(parent)
            record = self._records[parent]
        chain.reverse()
        logger.debug("chain_resolved", specimen=identity.tokens, depth=len(chain))
        return chain

    def root_of(self, identity: SpecimenIdentity) -> SpecimenIdentity:
        return self.resolve_chain(identity)[0]

    def annotation_for(self, identity: SpecimenIdentity) -> str:
        """Nearest non-empty annotation on the way back to the root."""
        for ancestor in reversed(self.resolve_chain(identity)):
            annotation = self._records[ancestor].annotation
            if annotation:
                return annotation
        return ""

    def records(self) -> List[AliasRecord]:
        return list(self._records.values())

    def _require(self, identity: SpecimenIdentity) -> AliasRecord:
        record = self._records.get(identity)
        if record is None:
            raise BrokenChain(f"No specimen recorded for {identity!r}", identity, missing=identity)
        return record

    def to_dict(self) -> dict:
        return {"records": [r.to_dict() for r in self._records.values()]}
