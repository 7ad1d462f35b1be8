import itertools

import pytest

from specimen_guide.errors import MalformedIdentity
from specimen_guide.identity import (
    TECH_CALL, TECH_CALL_CATEGORY, SpecimenIdentity, encode_key, encode_label,
    label_lines, package_label, sample_num_to_id,
)
from specimen_guide.kits import RT_PCR_KIT


def test_label_with_sample(extract_tube):
    assert encode_label(extract_tube) == "E6-001"


def test_label_without_sample():
    assert encode_label(SpecimenIdentity("K001", "L", "0")) == "L0"


def test_labels_are_distinct_across_fields():
    identities = [
        SpecimenIdentity("K001", "E", "6", "001"),
        SpecimenIdentity("K001", "E", "6", "002"),
        SpecimenIdentity("K001", "E", "6", ""),
        SpecimenIdentity("K001", "A", "6", "001"),
        SpecimenIdentity("K001", "L", "10", "001"),
        SpecimenIdentity("K001", "D", "2", "001"),
    ]
    labels = [encode_label(i) for i in identities]
    assert len(set(labels)) == len(labels)


def test_labels_are_distinct_over_kit_tokens():
    pairs = set()
    for unit in RT_PCR_KIT.units:
        for token in unit.components.values():
            for t in (token if isinstance(token, tuple) else (token,)):
                if t:
                    pairs.add((unit.unit_name, t))
    labels = {encode_label(SpecimenIdentity("K001", u, c, "001")) for u, c in pairs}
    assert len(labels) == len(pairs)


def test_labels_leave_out_kit_and_token_boundary():
    assert encode_label(SpecimenIdentity("K001", "E", "6", "001")) == \
        encode_label(SpecimenIdentity("K002", "E", "6", "001"))
    assert encode_label(SpecimenIdentity("K001", "E", "61")) == \
        encode_label(SpecimenIdentity("K001", "E6", "1"))


@pytest.mark.parametrize("unit,component", [("", "6"), ("E", ""), ("E-1", "6"), ("E", "6-a")])
def test_malformed_identity_rejected(unit, component):
    with pytest.raises(MalformedIdentity) as exc:
        encode_label(SpecimenIdentity("K001", unit, component, "001"))
    assert exc.value.identity.unit == unit


def test_raw_sample_has_no_label(raw_sample):
    with pytest.raises(MalformedIdentity):
        encode_label(raw_sample)


def test_keys_differ_per_suffix(extract_tube):
    suffixes = [TECH_CALL, TECH_CALL_CATEGORY, "scanned_image_upload_id"]
    keys = [encode_key(extract_tube, s) for s in suffixes]
    assert keys[0] == "E6-001_tech_call"
    assert keys[1] == "E6-001_tech_call_category"
    for a, b in itertools.combinations(keys, 2):
        assert a != b


def test_empty_suffix_rejected(extract_tube):
    with pytest.raises(ValueError):
        encode_key(extract_tube, "")


def test_package_label_and_sticker_lines(extract_tube):
    assert package_label(extract_tube) == "K001E"
    assert label_lines(extract_tube) == ("E6", "001")


def test_with_returns_new_identity(extract_tube):
    column = extract_tube.with_(component="5")
    assert encode_label(column) == "E5-001"
    assert extract_tube.component == "6"


def test_identity_is_immutable(extract_tube):
    with pytest.raises(AttributeError):
        extract_tube.sample = "002"


def test_sample_num_to_id():
    assert sample_num_to_id(1) == "001"
    assert sample_num_to_id(42) == "042"
    with pytest.raises(ValueError):
        sample_num_to_id(-1)
