import pytest

from specimen_guide.aliases import AliasGraph
from specimen_guide.identity import SpecimenIdentity


@pytest.fixture
def raw_sample() -> SpecimenIdentity:
    """Patient sample 001 as it arrives, before any stage has touched it."""
    return SpecimenIdentity(kit="K001", unit="", component="S", sample="001")


@pytest.fixture
def extract_tube() -> SpecimenIdentity:
    return SpecimenIdentity(kit="K001", unit="E", component="6", sample="001")


@pytest.fixture
def graph() -> AliasGraph:
    return AliasGraph()
