"""
Batch handling
==============
Specimens run through a stage together. Identity, provenance and validation
failures knock out a single specimen; the rest of the batch carries on in a
fixed order (sorted by output label) so instructions come out the same on
every run. Layout errors are bugs and propagate.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence

import structlog

from specimen_guide.aliases import AliasGraph, group_by
from specimen_guide.errors import SpecimenError
from specimen_guide.identity import SpecimenIdentity, encode_label, package_label, sample_num_to_id

logger = structlog.get_logger(__name__)


@dataclass
class BatchEntry:
    input: SpecimenIdentity
    outputs: List[SpecimenIdentity]
    annotation: str = ""
    errors: List[str] = field(default_factory=list)

    @property
    def output(self) -> SpecimenIdentity:
        return self.outputs[0]

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    def output_labels(self) -> List[str]:
        return [encode_label(o) for o in self.outputs]

    def label_string(self) -> str:
        """ "L1-001 through L10-001" for a set, the single label otherwise."""
        labels = self.output_labels()
        if len(labels) == 1:
            return labels[0]
        return f"{labels[0]} through {labels[-1]}"

    def to_dict(self) -> dict:
        return {
            "input": self.input.to_dict(),
            "outputs": [o.to_dict() for o in self.outputs],
            "annotation": self.annotation,
            "errors": self.errors,
        }


class SpecimenBatch:
    def __init__(self, entries: Sequence[BatchEntry]):
        for e in entries:
            if not e.outputs:
                raise ValueError(f"Batch entry for {e.input!r} has no outputs")
        self.entries = list(entries)
        # unlabelable outputs fail up front so sorting never trips on them
        for e in self.entries:
            with self.guard(e):
                e.output_labels()

    def running(self) -> List[BatchEntry]:
        return sorted((e for e in self.entries if not e.failed),
                      key=lambda e: encode_label(e.output))

    @property
    def all_errored(self) -> bool:
        return not self.running()

    def failures(self) -> List[BatchEntry]:
        return [e for e in self.entries if e.failed]

    def fail(self, entry: BatchEntry, exc: Exception):
        entry.errors.append(f"{type(exc).__name__}: {exc}")
        logger.warning("specimen_failed", specimen=entry.input.tokens,
                       error=type(exc).__name__, detail=str(exc))

    @contextmanager
    def guard(self, entry: BatchEntry) -> Iterator[BatchEntry]:
        """Record specimen-level errors against entry instead of aborting the batch."""
        try:
            yield entry
        except SpecimenError as exc:
            self.fail(entry, exc)

    def group_packages(self) -> Dict[str, List[BatchEntry]]:
        return group_by(self.running(), lambda e: package_label(e.output))

    def alias_outputs(self, graph: AliasGraph):
        """Record every running entry's outputs as children of its input."""
        for entry in self.running():
            with self.guard(entry):
                graph.create_collection_aliases(entry.outputs, entry.input, entry.annotation)

    def to_dict(self) -> dict:
        return {"entries": [e.to_dict() for e in self.entries],
                "running": len(self.running())}


def debug_batch(kit: str, n: int, unit: str, component: str,
                out_unit: str, out_components: Sequence[str],
                annotation: str = "a patient id",
                graph: Optional[AliasGraph] = None) -> SpecimenBatch:
    """
    Mint samples 001..n as if a previous stage had produced them; with a
    graph the inputs are registered as roots.
    """
    entries = []
    for i in range(1, n + 1):
        sample = sample_num_to_id(i)
        inp = SpecimenIdentity(kit, unit, component, sample)
        if graph is not None:
            graph.register_root(inp, annotation)
        outs = [SpecimenIdentity(kit, out_unit, c, sample) for c in out_components]
        entries.append(BatchEntry(inp, outs, annotation))
    return SpecimenBatch(entries)
