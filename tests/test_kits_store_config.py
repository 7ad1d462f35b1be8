import pytest

from specimen_guide.config import EngineConfig
from specimen_guide.errors import MalformedIdentity
from specimen_guide.identity import SpecimenIdentity, encode_label
from specimen_guide.kits import RT_PCR_KIT, KitDefinition, UnitDefinition
from specimen_guide.store import (
    InMemoryAssociationStore, UploadHandle, record_scanned_image, record_tech_call,
)


# ── Kits ──────────────────────────────────────────────────────────────────────

def test_extraction_tube_identity():
    identity = RT_PCR_KIT.identity_for("K001", "extraction", "rna extract tube", "001")
    assert encode_label(identity) == "E6-001"


def test_ligation_tube_set():
    tubes = RT_PCR_KIT.identities_for("K001", "ligation", "sample tubes", "002")
    assert [encode_label(t) for t in tubes][:2] == ["L1-002", "L2-002"]
    assert len(tubes) == 10


def test_tube_set_needs_identities_for():
    with pytest.raises(TypeError):
        RT_PCR_KIT.identity_for("K001", "detection", "strips", "001")


def test_sample_prep_stage_mints_no_label(raw_sample):
    with pytest.raises(MalformedIdentity) as exc:
        RT_PCR_KIT.identity_for("K001", "sample prep", "sample tube", "001")
    assert exc.value.identity.unit == "S"
    with pytest.raises(MalformedIdentity):
        RT_PCR_KIT.identity_for("K001", "rt module", "sample tube", "001")
    assert RT_PCR_KIT.raw_sample("K001", "001") == raw_sample


def test_unknown_stage_and_component():
    with pytest.raises(KeyError):
        RT_PCR_KIT.unit("sequencing")
    with pytest.raises(KeyError):
        RT_PCR_KIT.identity_for("K001", "pcr", "gold")


def test_kit_definitions_are_immutable():
    pcr = RT_PCR_KIT.unit("pcr")
    with pytest.raises(TypeError):
        pcr.components["sample tube"] = "9"
    with pytest.raises(AttributeError):
        pcr.unit_name = "Z"


def test_two_kits_side_by_side():
    alt = KitDefinition("alt kit", (UnitDefinition("pcr", "P", {"sample tube": "7"}),))
    a = RT_PCR_KIT.identity_for("K001", "pcr", "sample tube", "001")
    b = alt.identity_for("K001", "pcr", "sample tube", "001")
    assert (encode_label(a), encode_label(b)) == ("A2-001", "P7-001")
    assert RT_PCR_KIT.unit("pcr").settings["PCR Rehydration Volume"] == 40


# ── Association store ─────────────────────────────────────────────────────────

def test_tech_call_keys():
    store = InMemoryAssociationStore()
    strip = SpecimenIdentity("K001", "D", "3", "001")
    record_tech_call(store, 17, strip, "M", "mutant")
    assert store.get(17, "D3-001_tech_call") == "M"
    assert store.get(17, "D3-001_tech_call_category") == "mutant"
    assert store.get(18, "D3-001_tech_call") is None


def test_tech_call_without_category():
    store = InMemoryAssociationStore()
    record_tech_call(store, 1, SpecimenIdentity("K001", "D", "1", "001"), "N")
    assert store.keys_for(1) == ["D1-001_tech_call"]


def test_scanned_image_stores_upload_id():
    store = InMemoryAssociationStore()
    record_scanned_image(store, 3, SpecimenIdentity("K001", "D", "1", "001"),
                         UploadHandle(42, "K001001.jpg"))
    assert store.get(3, "D1-001_scanned_image_upload_id") == 42


# ── Config ────────────────────────────────────────────────────────────────────

def test_config_defaults():
    config = EngineConfig()
    assert (config.package_max_attempts, config.image_max_attempts) == (3, 5)
    assert not config.test_mode


def test_config_from_env():
    config = EngineConfig.from_env({
        "SPECIMEN_GUIDE_PACKAGE_MAX_ATTEMPTS": "4",
        "SPECIMEN_GUIDE_TEST_MODE": "yes",
        "SPECIMEN_GUIDE_LOG_LEVEL": "debug",
    })
    assert config.package_max_attempts == 4
    assert config.image_max_attempts == 5
    assert config.test_mode
    assert config.log_level == "DEBUG"


def test_config_rejects_zero_budget():
    with pytest.raises(ValueError):
        EngineConfig(image_max_attempts=0)
