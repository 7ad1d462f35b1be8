"""
Kit definitions
===============
Immutable descriptions of the reagent kits: which unit token each stage uses,
which component tokens sit in its package, and how many samples / sub-packages
a package serves. Stage drivers receive a KitDefinition explicitly, so two
kit layouts can be exercised side by side.

Numeric settings (rehydration volumes and the like) are carried through
untouched in `settings`; nothing here computes with them.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Tuple, Union
from types import MappingProxyType

from specimen_guide.errors import MalformedIdentity
from specimen_guide.identity import SpecimenIdentity

ComponentToken = Union[str, Tuple[str, ...]]

# raw patient samples carry no unit; stages with an empty token only hand them on
RAW_SAMPLE_COMPONENT = "S"


@dataclass(frozen=True)
class UnitDefinition:
    stage: str                                        # "extraction", "pcr", ...
    unit_name: str                                    # "E", "A", ...
    components: Mapping[str, ComponentToken] = field(default_factory=dict)
    num_samples: int = 1
    num_sub_packages: int = 1
    settings: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "components", MappingProxyType(dict(self.components)))
        object.__setattr__(self, "settings", MappingProxyType(dict(self.settings)))

    def component_token(self, name: str) -> ComponentToken:
        try:
            return self.components[name]
        except KeyError:
            raise KeyError(f"Unit {self.unit_name!r} ({self.stage}) has no component {name!r}") from None


@dataclass(frozen=True)
class KitDefinition:
    name: str
    units: Tuple[UnitDefinition, ...]
    mutation_labels: Tuple[str, ...] = ()
    mutation_colors: Tuple[str, ...] = ()

    def unit(self, stage: str) -> UnitDefinition:
        for u in self.units:
            if u.stage == stage:
                return u
        raise KeyError(f"Kit {self.name!r} has no stage {stage!r}")

    def stages(self) -> List[str]:
        return [u.stage for u in self.units]

    def identity_for(self, kit_code: str, stage: str, component: str,
                     sample: str = "") -> SpecimenIdentity:
        u = self.unit(stage)
        token = u.component_token(component)
        if not isinstance(token, str):
            raise TypeError(f"Component {component!r} is a tube set; use identities_for")
        identity = SpecimenIdentity(kit_code, u.unit_name, token, sample)
        if not token:
            raise MalformedIdentity(
                f"Stage {stage!r} mints no labelled {component!r}; use raw_sample for the input",
                identity)
        return identity

    def raw_sample(self, kit_code: str, sample: str) -> SpecimenIdentity:
        """The unlabelled patient sample a kit's first stage receives."""
        return SpecimenIdentity(kit_code, "", RAW_SAMPLE_COMPONENT, sample)

    def identities_for(self, kit_code: str, stage: str, component: str,
                       sample: str = "") -> List[SpecimenIdentity]:
        u = self.unit(stage)
        token = u.component_token(component)
        tokens = (token,) if isinstance(token, str) else token
        return [SpecimenIdentity(kit_code, u.unit_name, t, sample) for t in tokens]

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "units": [
                {"stage": u.stage, "unit_name": u.unit_name,
                 "components": {k: (list(v) if isinstance(v, tuple) else v)
                                for k, v in u.components.items()},
                 "num_samples": u.num_samples, "num_sub_packages": u.num_sub_packages,
                 "settings": dict(u.settings)}
                for u in self.units
            ],
            "mutation_labels": list(self.mutation_labels),
            "mutation_colors": list(self.mutation_colors),
        }


# ── Field kit ─────────────────────────────────────────────────────────────────

_TEN = tuple(str(i) for i in range(1, 11))

RT_PCR_KIT = KitDefinition(
    name="rt pcr kit",
    units=(
        UnitDefinition("sample prep", "S", {"sample tube": ""}),
        UnitDefinition("rt module", "RT", {"sample tube": ""}),
        UnitDefinition("extraction", "E", {
            "dtt": "0",
            "lysis buffer": "1",
            "wash buffer 1": "2",
            "wash buffer 2": "3",
            "sodium azide water": "4",
            "sample column": "5",
            "rna extract tube": "6",
        }, num_samples=2),
        UnitDefinition("pcr", "A", {"sample tube": "2", "diluent A": "0"},
                       num_samples=2, num_sub_packages=2,
                       settings={"PCR Rehydration Volume": 40}),
        UnitDefinition("ligation", "L", {
            "sample tubes": _TEN,
            "diluent A": "0",
        }, num_samples=2, num_sub_packages=2,
            settings={"PCR to Ligation Mix Volume": 4, "Ligation Mix Rehydration Volume": 20}),
        UnitDefinition("detection", "D", {
            "strips": _TEN,
            "diluent A": "0",
            "stop": "1",
            "gold": "2",
        }, num_samples=2, num_sub_packages=4,
            settings={"Stop Rehydration Volume": 96, "Gold Rehydration Volume": 1032,
                      "Gold to Strip Volume": 40, "Sample to Strip Volume": 24,
                      "Stop to Sample Volume": 4, "Sample Volume": 2.4}),
    ),
    mutation_labels=("M41L", "K65R", "L74I", "K103N", "Y115F", "Y181C", "M184V",
                     "G190A", "T215F/Y", "NC"),
    mutation_colors=("red", "green", "yellow", "blue", "purple", "white", "gray",
                     "red", "green", "yellow"),
)

# ligation tube caps, per slot
LIGATION_TUBE_COLORS = ("blue1", "blue2", "blue3", "blue4", "blue5",
                        "pink5", "pink4", "pink3", "pink2", "pink1")
