import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from documents import DocumentCatalog, ValidationError, canonical_section_id, format_parameters  # noqa: E402
from documents.context import NO_PARAMETERS, NO_VALID_PARAMETERS, build_generation_context  # noqa: E402
from documents.profiles import get_profile  # noqa: E402


EXPECTED_SECTION_COUNTS = {
    "protocol": 10,
    "ind": 10,
    "nda": 5,
    "bla": 5,
    "cta": 7,
    "maa": 8,
    "impd": 7,
    "jnda": 8,
    "aus": 6,
    "nds": 8,
    "nda_ch": 7,
    "nda_kr": 6,
    "ma_uk": 7,
    "ma_ch": 6,
    "cta_uk": 7,
    "cta_ca": 6,
    "cta_ru": 6,
    "ind_ch": 6,
    "ind_kr": 6,
    "nda_in": 7,
}


@pytest.fixture(scope="module")
def catalog():
    return DocumentCatalog.load_default()


def test_default_catalog_registers_every_document_type(catalog):
    assert catalog.keys() == sorted(EXPECTED_SECTION_COUNTS)
    for key, count in EXPECTED_SECTION_COUNTS.items():
        document = catalog.require(key)
        assert document.section_count == count
        assert [spec.index for spec in document.sections] == list(range(1, count + 1))
    assert catalog.subject_parameter == "disease_name"


def test_ind_splits_after_six_sections(catalog):
    layout = catalog.require("ind").layout
    assert layout.kind == "split"
    assert layout.split_at == 6
    assert layout.names == ("cmc_section", "clinical_section")


def test_protocol_and_ind_profiles(catalog):
    assert catalog.require("protocol").layout.kind == "protocol"
    assert catalog.require("ind").profile.name == "REGULATORY"
    assert catalog.require("impd").profile.name == "COMPREHENSIVE"


@pytest.mark.parametrize("key", ["nds", "nda_ch", "ma_uk", "cta_ru", "ind_kr", "nda_in"])
def test_regional_types_use_regulatory_profile_and_default_layout(catalog, key):
    document = catalog.require(key)
    assert document.profile.name == "REGULATORY"
    assert document.layout.kind == "default"
    assert document.sections[0].title == "ADMINISTRATIVE INFORMATION"


def test_section_ids_unique_within_each_type(catalog):
    for document in catalog:
        ids = [spec.id for spec in document.sections]
        assert len(ids) == len(set(ids)), document.key


def test_canonical_ids():
    assert canonical_section_id(3) == "regulatory-section-3"


def test_invalid_catalog_is_rejected():
    with pytest.raises(ValueError) as excinfo:
        DocumentCatalog.from_mapping({"document_types": {"bad": {"label": "Bad", "sections": []}}})
    assert "document_types/bad/sections" in str(excinfo.value)


def test_split_point_must_leave_sections_on_both_sides():
    raw = {
        "document_types": {
            "odd": {
                "label": "Odd",
                "layout": {"kind": "split", "split_at": 2, "names": ["a", "b"]},
                "sections": [
                    {"id": "one", "title": "ONE", "directive": "first"},
                    {"id": "two", "title": "TWO", "directive": "second"},
                ],
            }
        }
    }
    with pytest.raises(ValueError):
        DocumentCatalog.from_mapping(raw)


def test_require_unknown_type(catalog):
    with pytest.raises(ValidationError) as excinfo:
        catalog.require("pma")
    assert str(excinfo.value) == "Unsupported document type: pma"
    assert "ind" in excinfo.value.details["supported"]


def test_unknown_profile_falls_back_to_comprehensive():
    assert get_profile("UNKNOWN").name == "COMPREHENSIVE"


def test_section_profile_caps_tokens():
    regulatory = get_profile("REGULATORY")
    capped = regulatory.for_section(cap=2000)
    assert capped.max_tokens == 2000
    assert capped.request_options()["stop"] == list(regulatory.stop)
    assert regulatory.max_tokens == 3500


def test_format_parameters():
    text = format_parameters({"trial_phase": "Phase 2", "primary endpoint": "ORR", "blank": "  ", "none": None})
    assert text.splitlines() == ["- Trial Phase: Phase 2", "- Primary Endpoint: ORR"]
    assert format_parameters({}) == NO_PARAMETERS
    assert format_parameters({"blank": ""}) == NO_VALID_PARAMETERS


def test_generation_context_collects_missing_parameters(catalog):
    document = catalog.require("nda")
    context = build_generation_context(
        document,
        {"disease_name": " asthma ", "additional_parameters": {"trade_name": "Brand"}},
        subject_parameter="disease_name",
    )
    assert context.subject == "asthma"
    assert context.missing_parameters == ("active_ingredient", "indication")
    assert context.formatted_parameters == "- Trade Name: Brand"


def test_generation_context_rejects_non_mapping(catalog):
    with pytest.raises(ValidationError):
        build_generation_context(catalog.require("nda"), ["asthma"], subject_parameter="disease_name")
