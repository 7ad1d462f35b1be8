"""
Layer 1 — Specimen Token Codec
==============================
Every physical object in the assay carries four tokens:

  kit        – the reagent set it came from            (e.g. "K001")
  unit       – the stage that produced it              ("E", "RT", "A", "L", "D")
  component  – slot or reagent role inside the package ("6", "0", "blue1")
  sample     – patient sample passing through, or ""   ("001")

The display label printed on stickers is "{unit}{component}-{sample}" (or
"{unit}{component}" for shared reagents). Labels are presentation and lookup
artifacts only: identity fields are carried explicitly and never re-parsed
out of a label.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Tuple

from specimen_guide.errors import MalformedIdentity

SEPARATOR = "-"
KEY_JOINER = "_"

# Association-key suffixes written by the stage drivers
TECH_CALL = "tech_call"
TECH_CALL_CATEGORY = "tech_call_category"
SCANNED_IMAGE_UPLOAD_ID = "scanned_image_upload_id"


@dataclass(frozen=True)
class SpecimenIdentity:
    kit: str
    unit: str
    component: str
    sample: str = ""

    def with_(self, **fields) -> "SpecimenIdentity":
        """Sibling identity with some tokens swapped (same kit, other slot...)."""
        return replace(self, **fields)

    @property
    def tokens(self) -> Tuple[str, str, str, str]:
        return (self.kit, self.unit, self.component, self.sample)

    def to_dict(self) -> dict:
        return {
            "kit": self.kit,
            "unit": self.unit,
            "component": self.component,
            "sample": self.sample,
        }


def _check(identity: SpecimenIdentity):
    for field_name in ("unit", "component"):
        token = getattr(identity, field_name)
        if not token:
            raise MalformedIdentity(f"Identity {identity!r} has an empty {field_name}", identity)
        if SEPARATOR in token:
            raise MalformedIdentity(
                f"{field_name} token {token!r} contains the separator {SEPARATOR!r}", identity)


def encode_label(identity: SpecimenIdentity) -> str:
    """
    Sticker label for one object. The kit is not printed, and unit and
    component are joined without a separator, so labels are unique only
    among identities of one kit whose unit/component tokens come from that
    kit's definition. ("E", "61") and ("E6", "1") would print alike.
    """
    _check(identity)
    head = f"{identity.unit}{identity.component}"
    if identity.sample:
        return f"{head}{SEPARATOR}{identity.sample}"
    return head


def encode_key(identity: SpecimenIdentity, suffix: str) -> str:
    """Storage key for one kind of datum on a specimen, e.g. "D3-001_tech_call"."""
    if not suffix:
        raise ValueError("Association key suffix must not be empty")
    return f"{encode_label(identity)}{KEY_JOINER}{suffix}"


def package_label(identity: SpecimenIdentity) -> str:
    """Package a specimen's reagents ship in, e.g. "K001L"."""
    return f"{identity.kit}{identity.unit}"


def label_lines(identity: SpecimenIdentity) -> Tuple[str, str]:
    """Two-line sticker text: ("E6", "001")."""
    _check(identity)
    return f"{identity.unit}{identity.component}", identity.sample


def sample_num_to_id(num: int) -> str:
    if num < 0:
        raise ValueError(f"Sample number must be non-negative, got {num}")
    return f"{num:03d}"
