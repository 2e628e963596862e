"""Unit tests for the Airtable and Mapbox clients and the record store."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, Mock, patch

import pytest
import requests

from app.adapters import (
    AdapterConfigurationError,
    AdapterHTTPError,
    AdapterResponseError,
    AdapterTimeoutError,
    AirtableClient,
    AirtableRecordStore,
    MapboxGeocoder,
    build_geocoder,
    build_record_store,
    chunked,
)
from app.adapters.base import BaseHTTPClient
from app.adapters.mapbox import confidence_for_relevance, source_for_place_types
from app.config.environment import EnvironmentConfig
from app.config.models import AppConfig
from app.domain.models import MatchRecord, MatchStage, RawRecord

BASE_ID = "appABCDEFGHIJKLMN"


def make_response(status_code=200, json_data=None, headers=None, reason="OK"):
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    response.headers = headers or {}
    response.text = ""
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def client():
    return AirtableClient(api_key="patTEST", base_id=BASE_ID, timeout=30)


@pytest.fixture
def env_config():
    return EnvironmentConfig(
        airtable_api_key="patTEST",
        airtable_base_id=BASE_ID,
        mapbox_access_token="pk.test",
    )


# ============================================================================
# Base Client Tests
# ============================================================================


class TestBaseHTTPClient:
    """Tests for BaseHTTPClient request handling."""

    def test_cannot_instantiate_abstract_class(self):
        with pytest.raises(TypeError):
            BaseHTTPClient()

    def test_init_with_invalid_timeout(self):
        with pytest.raises(AdapterConfigurationError):
            AirtableClient(api_key="k", base_id=BASE_ID, timeout=1)

    def test_init_with_empty_user_agent(self):
        with pytest.raises(AdapterConfigurationError):
            AirtableClient(api_key="k", base_id=BASE_ID, user_agent="   ")

    def test_returns_json_body(self, client):
        with patch.object(client._session, "request", return_value=make_response(json_data={"ok": 1})):
            assert client._make_request("https://example.com") == {"ok": 1}

    def test_http_error_carries_status_and_retry_after(self, client):
        response = make_response(
            status_code=429,
            json_data={"error": {"type": "RATE_LIMIT", "message": "Too many requests"}},
            headers={"Retry-After": "30"},
            reason="Too Many Requests",
        )
        with patch.object(client._session, "request", return_value=response):
            with pytest.raises(AdapterHTTPError) as exc_info:
                client._make_request("https://example.com")

        error = exc_info.value
        assert error.status_code == 429
        assert error.retry_after == 30.0
        assert error.is_retryable
        assert "Too many requests" in str(error)

    def test_client_error_is_not_retryable(self, client):
        response = make_response(status_code=422, json_data={"error": "INVALID_REQUEST"}, reason="Unprocessable")
        with patch.object(client._session, "request", return_value=response):
            with pytest.raises(AdapterHTTPError) as exc_info:
                client._make_request("https://example.com")

        assert not exc_info.value.is_retryable

    def test_timeout(self, client):
        with patch.object(client._session, "request", side_effect=requests.exceptions.Timeout()):
            with pytest.raises(AdapterTimeoutError):
                client._make_request("https://example.com")

    def test_connection_error_has_status_zero(self, client):
        with patch.object(client._session, "request", side_effect=requests.exceptions.ConnectionError()):
            with pytest.raises(AdapterHTTPError) as exc_info:
                client._make_request("https://example.com")

        assert exc_info.value.status_code == 0
        assert exc_info.value.is_retryable

    def test_invalid_json(self, client):
        with patch.object(client._session, "request", return_value=make_response(json_data=ValueError("bad"))):
            with pytest.raises(AdapterResponseError):
                client._make_request("https://example.com")

    def test_parse_timestamp(self):
        parsed = BaseHTTPClient._parse_timestamp("2025-11-04T10:30:00.000Z")
        assert parsed == datetime(2025, 11, 4, 10, 30, 0, tzinfo=timezone.utc)
        assert BaseHTTPClient._parse_timestamp("not a date") is None
        assert BaseHTTPClient._parse_timestamp(None) is None


def test_chunked():
    assert chunked(list(range(23)), 10) == [list(range(10)), list(range(10, 20)), [20, 21, 22]]
    assert chunked([], 10) == []
    with pytest.raises(ValueError):
        chunked([1], 0)


# ============================================================================
# Airtable Client Tests
# ============================================================================


class TestAirtableClient:
    """Tests for AirtableClient."""

    def test_requires_credentials(self):
        with pytest.raises(AdapterConfigurationError):
            AirtableClient(api_key="", base_id=BASE_ID)
        with pytest.raises(AdapterConfigurationError):
            AirtableClient(api_key="k", base_id="")

    def test_authorization_header(self, client):
        assert client._session.headers["Authorization"] == "Bearer patTEST"

    def test_table_url_is_quoted(self, client):
        assert client.table_url("Property-Buyer Matches") == (
            f"https://api.airtable.com/v0/{BASE_ID}/Property-Buyer%20Matches"
        )

    def test_list_records_follows_offset(self, client):
        pages = [
            {"records": [{"id": "rec1", "fields": {"Beds": 3}, "createdTime": "2025-11-04T10:30:00.000Z"}], "offset": "itr1"},
            {"records": [{"id": "rec2", "fields": {}}]},
        ]
        with patch.object(client, "_make_request", side_effect=pages) as mock_request:
            records = client.list_records("Properties", fields=["Beds"])

        assert [r.id for r in records] == ["rec1", "rec2"]
        assert records[0].created_time == datetime(2025, 11, 4, 10, 30, 0, tzinfo=timezone.utc)
        first_params = mock_request.call_args_list[0].kwargs["params"]
        second_params = mock_request.call_args_list[1].kwargs["params"]
        assert ("fields[]", "Beds") in first_params
        assert ("offset", "itr1") not in first_params
        assert ("offset", "itr1") in second_params

    def test_list_records_unexpected_shape(self, client):
        with patch.object(client, "_make_request", return_value=["nope"]):
            with pytest.raises(AdapterResponseError):
                client.list_records("Buyers")

    def test_create_records_payload(self, client):
        response = {"records": [{"id": "recNEW1", "fields": {"Match Score": 90}}]}
        with patch.object(client, "_make_request", return_value=response) as mock_request:
            created = client.create_records("Matches", [{"Match Score": 90}])

        assert created[0].id == "recNEW1"
        kwargs = mock_request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["json_data"] == {"records": [{"fields": {"Match Score": 90}}], "typecast": True}

    def test_batch_limit(self, client):
        with pytest.raises(ValueError):
            client.create_records("Matches", [{}] * 11)
        with pytest.raises(ValueError):
            client.delete_records("Matches", [f"rec{i}" for i in range(11)])

    def test_empty_batches_skip_the_request(self, client):
        with patch.object(client, "_make_request") as mock_request:
            assert client.create_records("Matches", []) == []
            assert client.update_records("Matches", []) == []
            assert client.delete_records("Matches", []) == []
        mock_request.assert_not_called()

    def test_update_records_payload(self, client):
        response = {"records": [{"id": "recM1", "fields": {}}]}
        with patch.object(client, "_make_request", return_value=response) as mock_request:
            client.update_records("Matches", [("recM1", {"Match Score": 50})])

        kwargs = mock_request.call_args.kwargs
        assert kwargs["method"] == "PATCH"
        assert kwargs["json_data"]["records"] == [{"id": "recM1", "fields": {"Match Score": 50}}]

    def test_delete_records_returns_deleted_ids(self, client):
        response = {"records": [{"id": "recM1", "deleted": True}, {"id": "recM2", "deleted": False}]}
        with patch.object(client, "_make_request", return_value=response) as mock_request:
            deleted = client.delete_records("Matches", ["recM1", "recM2"])

        assert deleted == ["recM1"]
        assert mock_request.call_args.kwargs["params"] == [("records[]", "recM1"), ("records[]", "recM2")]

    def test_malformed_record(self, client):
        with patch.object(client, "_make_request", return_value={"records": [{"fields": {}}]}):
            with pytest.raises(AdapterResponseError):
                client.list_records("Buyers")


# ============================================================================
# Record Store Tests
# ============================================================================


class TestAirtableRecordStore:
    """Tests for AirtableRecordStore."""

    @pytest.fixture
    def mock_client(self):
        return MagicMock(spec=AirtableClient)

    @pytest.fixture
    def store(self, mock_client):
        return AirtableRecordStore(mock_client)

    @pytest.fixture
    def match(self):
        return MatchRecord(
            buyer_id="recB1",
            property_id="recP1",
            score=88,
            is_priority=True,
            notes="Excellent Match",
            distance_miles=3.26,
            stage=MatchStage.UNDERWRITING,
        )

    def test_list_buyers_normalizes(self, store, mock_client):
        mock_client.list_records.return_value = [
            RawRecord(id="recB1", fields={"First Name": "Jane", "No. of Bedrooms": 3})
        ]

        buyers = store.list_buyers()

        mock_client.list_records.assert_called_once_with("Buyers")
        assert buyers[0].first_name == "Jane"
        assert buyers[0].desired_beds == 3

    def test_list_matches_skips_unlinked(self, store, mock_client):
        mock_client.list_records.return_value = [
            RawRecord(id="recM1", fields={"Contact ID": ["recB1"], "Property Code": ["recP1"]}),
            RawRecord(id="recM2", fields={"Contact ID": ["recB1"]}),
        ]

        matches = store.list_matches()

        assert [m.record_id for m in matches] == ["recM1"]
        assert mock_client.list_records.call_args.args[0] == "Property-Buyer Matches"

    def test_list_match_ids_includes_unlinked(self, store, mock_client):
        mock_client.list_records.return_value = [RawRecord(id="recM1"), RawRecord(id="recM2")]
        assert store.list_match_ids() == ["recM1", "recM2"]

    def test_match_fields_on_create(self, store, match):
        fields = store.match_fields(match, include_links=True)

        assert fields == {
            "Match Score": 88,
            "Is Priority": True,
            "Match Notes": "Excellent Match",
            "Distance (miles)": 3.3,
            "Contact ID": ["recB1"],
            "Property Code": ["recP1"],
            "Match Status": "Active",
        }

    def test_match_fields_never_write_stage(self, store, match):
        fields = store.match_fields(match, include_links=False)

        assert "Match Stage" not in fields
        assert "Contact ID" not in fields
        assert "Match Status" not in fields

    def test_create_matches_assigns_ids(self, store, mock_client, match):
        mock_client.create_records.return_value = [RawRecord(id="recNEW")]

        created = store.create_matches([match])

        assert created[0].record_id == "recNEW"
        assert created[0].pair_key == ("recB1", "recP1")

    def test_create_matches_count_mismatch(self, store, mock_client, match):
        mock_client.create_records.return_value = []

        with pytest.raises(AdapterResponseError):
            store.create_matches([match])

    def test_update_requires_record_id(self, store, match):
        with pytest.raises(ValueError):
            store.update_matches([match])

    def test_update_buyer_coordinates_uses_first_field_name(self, store, mock_client):
        store.update_buyer_coordinates("recB1", 29.9, -90.1)

        mock_client.update_record.assert_called_once_with("Buyers", "recB1", {"Lat": 29.9, "Lng": -90.1})

    def test_update_match_stage(self, store, mock_client):
        mock_client.update_record.return_value = RawRecord(
            id="recM1",
            fields={"Contact ID": ["recB1"], "Property Code": ["recP1"], "Match Stage": "Contracts"},
        )

        updated = store.update_match_stage("recM1", MatchStage.CONTRACTS)

        mock_client.update_record.assert_called_once_with(
            "Property-Buyer Matches", "recM1", {"Match Stage": "Contracts"}
        )
        assert updated.stage is MatchStage.CONTRACTS


# ============================================================================
# Mapbox Geocoder Tests
# ============================================================================


class TestMapboxGeocoder:
    """Tests for MapboxGeocoder."""

    @pytest.fixture
    def geocoder(self):
        return MapboxGeocoder(access_token="pk.test")

    def test_requires_token(self):
        with pytest.raises(AdapterConfigurationError):
            MapboxGeocoder(access_token="")

    def test_geocode_success(self, geocoder):
        response = {
            "features": [
                {
                    "center": [-90.1529, 29.9841],
                    "place_name": "Metairie, Louisiana, United States",
                    "place_type": ["place"],
                    "relevance": 0.95,
                }
            ]
        }
        with patch.object(geocoder, "_make_request", return_value=response) as mock_request:
            result = geocoder.geocode("Metairie, LA")

        assert result.latitude == 29.9841
        assert result.longitude == -90.1529
        assert result.source == "city"
        assert result.confidence == "high"
        url = mock_request.call_args.args[0]
        assert url.endswith("/Metairie%2C%20LA.json")
        assert mock_request.call_args.kwargs["params"]["access_token"] == "pk.test"
        assert "pk.test" not in mock_request.call_args.kwargs["log_url"]

    def test_no_features(self, geocoder):
        with patch.object(geocoder, "_make_request", return_value={"features": []}):
            assert geocoder.geocode("Nowhere") is None

    def test_provider_error_is_none(self, geocoder):
        error = AdapterHTTPError("Unauthorized", status_code=401, url="https://api.mapbox.com")
        with patch.object(geocoder, "_make_request", side_effect=error):
            assert geocoder.geocode("Metairie, LA") is None

    def test_malformed_feature_is_none(self, geocoder):
        with patch.object(geocoder, "_make_request", return_value={"features": [{"center": "x"}]}):
            assert geocoder.geocode("Metairie, LA") is None

    def test_blank_query_skips_request(self, geocoder):
        with patch.object(geocoder, "_make_request") as mock_request:
            assert geocoder.geocode("  ") is None
        mock_request.assert_not_called()

    @pytest.mark.parametrize(
        "place_types,source",
        [(["address"], "address"), (["postcode", "place"], "zip"), (["place"], "city"), ([], "city")],
    )
    def test_source_for_place_types(self, place_types, source):
        assert source_for_place_types(place_types) == source

    @pytest.mark.parametrize("relevance,confidence", [(1.0, "high"), (0.75, "medium"), (0.2, "low"), (None, "low")])
    def test_confidence_for_relevance(self, relevance, confidence):
        assert confidence_for_relevance(relevance) == confidence


# ============================================================================
# Factory Tests
# ============================================================================


class TestFactory:
    """Tests for the factory functions."""

    def test_build_record_store_uses_config(self, env_config):
        app_config = AppConfig.model_validate(
            {"airtable": {"buyers_table": "Clients", "page_size": 50}, "advanced": {"http_request_timeout": 10}}
        )

        store = build_record_store(app_config, env_config)

        assert isinstance(store, AirtableRecordStore)
        assert store.tables.buyers_table == "Clients"
        assert store.client.page_size == 50
        assert store.client.timeout == 10

    def test_build_record_store_missing_key(self):
        env_config = EnvironmentConfig(airtable_api_key="", airtable_base_id=BASE_ID)
        with pytest.raises(AdapterConfigurationError):
            build_record_store(AppConfig(), env_config)

    def test_geocoder_disabled(self, env_config):
        assert build_geocoder(AppConfig(), env_config) is None

    def test_geocoder_without_token(self):
        app_config = AppConfig.model_validate({"geocoding": {"enabled": True}})
        env_config = EnvironmentConfig(airtable_api_key="k", airtable_base_id=BASE_ID)
        assert build_geocoder(app_config, env_config) is None

    def test_geocoder_enabled(self, env_config):
        app_config = AppConfig.model_validate({"geocoding": {"enabled": True, "country": "US"}})
        geocoder = build_geocoder(app_config, env_config)

        assert isinstance(geocoder, MapboxGeocoder)
        assert geocoder.country == "us"
