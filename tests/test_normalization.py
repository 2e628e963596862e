"""Unit tests for the normalization layer.

Tests the RecordNormalizer for:
- Field name fallbacks (first present spelling wins)
- Wrong-typed values becoming "absent"
- Match records with linked-record fields
- Batch processing that skips bad records
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from app.config.models import BuyerFieldMap, FieldMappingConfig
from app.domain.models import MatchStage, RawRecord
from app.normalization import NormalizationBatch, NormalizationError, RecordNormalizer
from app.normalization.service import first_present, linked_ids


@pytest.fixture
def normalizer():
    return RecordNormalizer()


class TestFirstPresent:
    """Tests for first_present."""

    def test_first_non_empty_value_wins(self):
        fields = {"Lat": None, "Location Lat": "", "Latitude": 29.9}
        assert first_present(fields, ["Lat", "Location Lat", "Latitude"]) == 29.9

    def test_empty_list_skipped(self):
        assert first_present({"A": [], "B": ["70062"]}, ["A", "B"]) == ["70062"]

    def test_zero_is_present(self):
        assert first_present({"Beds": 0}, ["Beds"]) == 0

    def test_nothing_present(self):
        assert first_present({}, ["A", "B"]) is None


def test_linked_ids():
    assert linked_ids(["recB1", "recB2"]) == ("recB1", "recB2")
    assert linked_ids(["recB1", " ", "recB1"]) == ("recB1",)
    assert linked_ids("recB1 ") == ("recB1",)
    assert linked_ids([]) == ()
    assert linked_ids(None) == ()


class TestBuyers:
    """Tests for buyer normalization."""

    def test_full_buyer(self, normalizer):
        record = RawRecord(
            id="recBUYER001",
            fields={
                "Contact ID": "C-100",
                "First Name": "Jane",
                "Preferred Zip Codes": "70062, 70065",
                "No. of Bedrooms": 3,
                "No. of Bath": 2,
                "Downpayment": 20000,
                "Location Lat": 29.99,
                "Location Lng": -90.24,
            },
        )

        buyer = normalizer.to_buyer(record)

        assert buyer.record_id == "recBUYER001"
        assert buyer.contact_id == "C-100"
        assert buyer.preferred_zip_codes == frozenset({"70062", "70065"})
        assert buyer.desired_beds == 3
        assert buyer.down_payment == 20000
        assert buyer.coordinates == (29.99, -90.24)

    def test_coordinate_spellings_are_tried_in_order(self, normalizer):
        record = RawRecord(id="rec1", fields={"Lat": 30.1, "Latitude": 29.0, "Lng": -90.0})
        buyer = normalizer.to_buyer(record)

        assert buyer.latitude == 30.1
        assert buyer.longitude == -90.0

    def test_wrong_types_become_absent(self, normalizer):
        record = RawRecord(
            id="rec1",
            fields={"No. of Bedrooms": "three", "Downpayment": -5, "Lat": "29.9", "Lng": "-90"},
        )
        buyer = normalizer.to_buyer(record)

        assert buyer.desired_beds is None
        assert buyer.down_payment is None
        assert buyer.coordinates is None

    def test_custom_field_names(self):
        mapping = FieldMappingConfig(buyers=BuyerFieldMap(desired_beds="Bedrooms Wanted"))
        record = RawRecord(id="rec1", fields={"Bedrooms Wanted": 4, "No. of Bedrooms": 2})

        buyer = RecordNormalizer(mapping).to_buyer(record)

        assert buyer.desired_beds == 4


class TestProperties:
    """Tests for property normalization."""

    def test_price_spellings(self, normalizer):
        assert normalizer.to_property(RawRecord(id="rec1", fields={"Price": 180000})).price == 180000
        record = RawRecord(id="rec1", fields={"Property Total Price": 250000, "Price": 1})
        assert normalizer.to_property(record).price == 250000

    def test_zip_and_address(self, normalizer):
        record = RawRecord(
            id="recPROP002",
            fields={"Property Code": "P-002", "Address": "45 Canal St", "ZIP Code": 70112, "Beds": 4},
        )
        prop = normalizer.to_property(record)

        assert prop.property_code == "P-002"
        assert prop.zip_code == "70112"
        assert prop.address == "45 Canal St"
        assert prop.beds == 4


class TestMatches:
    """Tests for match normalization."""

    def test_linked_match(self, normalizer):
        created = datetime(2025, 11, 4, 12, 0, 0, tzinfo=timezone.utc)
        record = RawRecord(
            id="recMATCH1",
            created_time=created,
            fields={
                "Contact ID": ["recBUYER001"],
                "Property Code": ["recPROP001"],
                "Match Score": 87.6,
                "Is Priority": True,
                "Match Stage": "Showing Scheduled",
                "Match Notes": "Good Match",
                "Distance (miles)": 3.2,
            },
        )

        match = normalizer.to_match(record)

        assert match.record_id == "recMATCH1"
        assert match.pair_key == ("recBUYER001", "recPROP001")
        assert match.score == 88
        assert match.is_priority is True
        assert match.stage is MatchStage.SHOWING_SCHEDULED
        assert match.notes == "Good Match"
        assert match.distance_miles == 3.2
        assert match.status == "Active"
        assert match.created_at == created

    def test_match_linking_several_records(self, normalizer):
        record = RawRecord(
            id="recMATCH1",
            fields={"Contact ID": ["recB1", "recB2"], "Property Code": ["recP1"], "Match Score": 70},
        )

        match = normalizer.to_match(record)

        assert match.pair_key == ("recB1", "recP1")
        assert match.linked_buyer_ids == ("recB1", "recB2")
        assert match.pair_keys == [("recB1", "recP1"), ("recB2", "recP1")]

    def test_unlinked_match_raises(self, normalizer):
        record = RawRecord(id="recMATCH1", fields={"Contact ID": ["recBUYER001"]})

        with pytest.raises(NormalizationError) as exc_info:
            normalizer.to_match(record)
        assert exc_info.value.record_id == "recMATCH1"

    @pytest.mark.parametrize("raw_score,expected", [(None, 0), ("high", 0), (150, 100), (-3, 0), (True, 0)])
    def test_score_clamped(self, normalizer, raw_score, expected):
        record = RawRecord(
            id="recMATCH1",
            fields={"Contact ID": ["recB"], "Property Code": ["recP"], "Match Score": raw_score},
        )
        assert normalizer.to_match(record).score == expected


class TestBatches:
    """Tests for whole-collection normalization."""

    def test_bad_records_are_skipped_and_reported(self):
        logger = MagicMock()
        normalizer = RecordNormalizer(logger_instance=logger)
        records = [
            RawRecord(id="recM1", fields={"Contact ID": ["recB"], "Property Code": ["recP"]}),
            RawRecord(id="recM2", fields={}),
        ]

        batch = normalizer.matches(records)

        assert isinstance(batch, NormalizationBatch)
        assert len(batch) == 1
        assert batch.error_count == 1
        assert batch.failures[0].record_id == "recM2"
        logger.warning.assert_called_once()
        assert logger.warning.call_args.kwargs["extra"]["event"] == "normalization.match.skipped"

    def test_buyers_keep_input_order(self, normalizer):
        records = [RawRecord(id=f"rec{i}") for i in range(5)]
        assert [b.record_id for b in normalizer.buyers(records)] == [f"rec{i}" for i in range(5)]
