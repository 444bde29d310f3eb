"""Tests for the clinic field normalizer."""

import pytest

from services.importer.models import INVALID_PHONE
from services.importer.normalizer import (
    map_service,
    normalize_clinic,
    normalize_phone,
    normalize_services,
    normalize_status,
    normalize_tier,
    normalize_website,
)
from services.importer.state_utils import normalize_state


@pytest.mark.no_db
class TestNormalizePhone:
    """Tests for phone formatting."""

    def test_ten_digits(self):
        assert normalize_phone("5125551234") == "(512) 555-1234"

    def test_ten_digits_with_punctuation(self):
        assert normalize_phone("512.555.1234") == "(512) 555-1234"

    def test_eleven_digits_with_country_code(self):
        assert normalize_phone("+1 (512) 555-1234") == "(512) 555-1234"

    def test_seven_digits(self):
        assert normalize_phone("5551234") == "555-1234"

    def test_empty_stays_empty(self):
        assert normalize_phone("") == ""
        assert normalize_phone(None) == ""

    def test_wrong_length_is_invalid(self):
        assert normalize_phone("12345") == INVALID_PHONE
        assert normalize_phone("25125551234") == INVALID_PHONE

    def test_numeric_input(self):
        assert normalize_phone(5125551234) == "(512) 555-1234"


@pytest.mark.no_db
class TestNormalizeWebsite:
    """Tests for website normalization."""

    def test_adds_https(self):
        assert normalize_website("acmeclinic.com") == "https://acmeclinic.com"

    def test_keeps_existing_scheme(self):
        assert normalize_website("http://acmeclinic.com") == "http://acmeclinic.com"

    def test_lowercases_host_keeps_path(self):
        assert normalize_website("WWW.AcmeClinic.com/Services") == "https://www.acmeclinic.com/Services"

    def test_strips_whitespace(self):
        assert normalize_website("  acme.com ") == "https://acme.com"

    def test_empty(self):
        assert normalize_website("") == ""
        assert normalize_website(None) == ""


@pytest.mark.no_db
class TestServices:
    """Tests for service synonym mapping."""

    def test_testosterone_maps_to_hormone_therapy(self):
        assert map_service("Testosterone Replacement") == "Hormone Therapy"

    def test_trt_maps_to_hormone_therapy(self):
        assert map_service("TRT") == "Hormone Therapy"

    def test_ed_is_whole_word(self):
        assert map_service("ED shockwave") == "ED Treatment"
        # "ed" inside another word must not match
        assert map_service("Medically supervised fasting") == "Medically supervised fasting"

    def test_hair_before_weight(self):
        assert map_service("Hair loss") == "Hair Restoration"

    def test_weight_loss(self):
        assert map_service("Semaglutide") == "Weight Loss"

    def test_unknown_passes_through(self):
        assert map_service("Cryotherapy") == "Cryotherapy"

    def test_split_and_dedupe(self):
        services = normalize_services("TRT, testosterone; Hair loss | cryotherapy")
        assert services == ["Hormone Therapy", "Hair Restoration", "cryotherapy"]

    def test_list_input(self):
        assert normalize_services(["ED", "Low T"]) == ["ED Treatment", "Hormone Therapy"]

    def test_empty(self):
        assert normalize_services("") == []
        assert normalize_services(None) == []


@pytest.mark.no_db
class TestTierAndStatus:
    """Tests for tier/status aliasing."""

    def test_tier_aliases(self):
        assert normalize_tier("Premium") == "premium"
        assert normalize_tier("PRO") == "premium"
        assert normalize_tier("free trial") == "free"
        assert normalize_tier("") == "basic"
        assert normalize_tier("standard") == "basic"

    def test_status_aliases(self):
        assert normalize_status("Pending") == "paused"
        assert normalize_status("disabled") == "inactive"
        assert normalize_status(None) == "active"

    def test_aliases_match_whole_values_only(self):
        assert normalize_tier("approved") == "basic"
        assert normalize_tier("product") == "basic"
        assert normalize_tier("Premium Package") == "basic"
        assert normalize_status("pending review") == "active"


@pytest.mark.no_db
class TestNormalizeState:
    """Tests for state normalization."""

    def test_code(self):
        assert normalize_state("tx") == "TX"

    def test_full_name(self):
        assert normalize_state("Texas") == "TX"

    def test_unknown_is_blank(self):
        assert normalize_state("Narnia") == ""


@pytest.mark.no_db
class TestNormalizeClinic:
    """Tests for full record normalization."""

    def test_missing_address_pauses(self):
        """Record without an address is tagged and paused, phone formatted."""
        clinic = normalize_clinic({
            "name": "Acme Clinic",
            "city": "Austin",
            "state": "tx",
            "phone": "5125551234",
        })

        assert "incomplete-address" in clinic.tags
        assert clinic.status == "paused"
        assert clinic.phone == "(512) 555-1234"
        assert clinic.state == "TX"

    def test_complete_record_has_no_validation_tags(self):
        clinic = normalize_clinic({
            "name": "  Peak   Men's Health ",
            "address": "100 Congress Ave",
            "city": "Austin",
            "state": "Texas",
            "zip": "78701",
            "phone": "512-555-1234",
            "website": "peakmens.com",
            "services": "TRT, ED",
            "tier": "premium",
        })

        assert clinic.name == "Peak Men's Health"
        assert clinic.tags == []
        assert clinic.status == "active"
        assert clinic.tier == "premium"
        assert clinic.zip_code == "78701"
        assert clinic.website == "https://peakmens.com"
        assert clinic.services == ["Hormone Therapy", "ED Treatment"]

    def test_empty_phone_is_tagged(self):
        clinic = normalize_clinic({"name": "Acme", "address": "1 Main", "city": "Austin", "state": "TX"})
        assert clinic.phone == ""
        assert "invalid-phone" in clinic.tags
        assert "missing-website" in clinic.tags
        assert "missing-services" in clinic.tags

    def test_missing_name_tagged(self):
        clinic = normalize_clinic({"city": "Austin"})
        assert "missing-name" in clinic.tags
        assert clinic.status == "paused"

    def test_package_alias_for_tier(self):
        clinic = normalize_clinic({"name": "Acme", "package": "premium"})
        assert clinic.tier == "premium"

    def test_invalid_state_counts_as_incomplete(self):
        clinic = normalize_clinic({"name": "Acme", "address": "1 Main", "city": "Austin", "state": "ZZ"})
        assert clinic.state == ""
        assert "incomplete-address" in clinic.tags
