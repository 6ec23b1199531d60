"""Tests for ZTM feed schemas and coercion helpers."""

import pytest
from app.schemas.ztm import (
    AllDeparturesResponse,
    Departure,
    DeparturesResponse,
    Stop,
    StopsResponse,
    coerce_nullable_float,
    coerce_nullable_int,
    coerce_nullable_str,
    parse_stop_ids,
)
from pydantic import ValidationError

from tests.helpers.ztm_feed import departure_entry, departures_document, stop_entry, stops_document


class TestCoerceNullableInt:
    """Tests for coerce_nullable_int."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("", None),
            ("   ", None),
            ("42", 42),
            (" 7 ", 7),
            ("-3", -3),
            ("12.0", 12),
            (5.0, 5),
            (9, 9),
            (None, None),
        ],
    )
    def test_coerces(self, raw: object, expected: int | None) -> None:
        """Test empty strings become None and integral values become int."""
        assert coerce_nullable_int(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "1.5", 2.5])
    def test_leaves_non_integral_values_for_validation(self, raw: object) -> None:
        """Test values that are not integers pass through unchanged."""
        assert coerce_nullable_int(raw) == raw


class TestCoerceNullableFloat:
    """Tests for coerce_nullable_float."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("", None), ("54.35", 54.35), (" 18.6 ", 18.6), (54.0, 54.0), (None, None)],
    )
    def test_coerces(self, raw: object, expected: float | None) -> None:
        """Test empty strings become None and numeric strings become float."""
        assert coerce_nullable_float(raw) == expected

    @pytest.mark.parametrize("raw", ["north", "nan", "inf"])
    def test_rejects_non_finite_and_text(self, raw: str) -> None:
        """Test text and non-finite numbers are left for validation to reject."""
        assert coerce_nullable_float(raw) == raw


class TestCoerceNullableStr:
    """Tests for coerce_nullable_str."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(1, "1"), (7.0, "7"), (2.5, "2.5"), ("01", "01"), (None, None), ("", "")],
    )
    def test_coerces(self, raw: object, expected: str | None) -> None:
        """Test numbers are rendered as text and strings are unchanged."""
        assert coerce_nullable_str(raw) == expected

    def test_booleans_are_not_rendered(self) -> None:
        """Test booleans are left for validation to reject."""
        assert coerce_nullable_str(True) is True


class TestStopSchema:
    """Tests for the Stop and StopsResponse schemas."""

    def test_parses_feed_entry(self) -> None:
        """Test a well-formed entry parses into snake_case attributes."""
        stop = Stop.model_validate(stop_entry(117, "Brama Wyżynna"))

        assert stop.stop_id == 117
        assert stop.stop_name == "Brama Wyżynna"
        assert stop.stop_lat == pytest.approx(54.3496)
        assert stop.wheelchair_boarding == 1

    def test_tolerates_upstream_quirks(self) -> None:
        """Test numeric strings, empty strings and missing optional fields."""
        stop = Stop.model_validate(
            {
                "stopId": "117",
                "stopCode": 1,
                "stopShortname": "",
                "zoneId": "2",
                "stopLat": "54.35",
                "stopLon": "",
                "virtual": "",
            }
        )

        assert stop.stop_id == 117
        assert stop.stop_code == "1"
        assert stop.stop_shortname is None
        assert stop.zone_id == 2
        assert stop.stop_lat == pytest.approx(54.35)
        assert stop.stop_lon is None
        assert stop.virtual is None
        assert stop.sub_name is None
        assert stop.parent_station is None

    def test_stop_id_is_required(self) -> None:
        """Test a stop without an id is rejected."""
        with pytest.raises(ValidationError):
            Stop.model_validate({"stopName": "Nowhere"})

    def test_non_numeric_stop_id_rejected(self) -> None:
        """Test text that is not a number still fails validation."""
        with pytest.raises(ValidationError):
            Stop.model_validate(stop_entry(117, stopId="abc"))

    def test_serialises_with_upstream_names(self) -> None:
        """Test documents round-trip to the feed's camelCase names."""
        document = StopsResponse.model_validate(stops_document())

        dumped = document.model_dump(by_alias=True)

        assert dumped["lastUpdate"] == document.last_update
        assert dumped["stops"][0]["stopId"] == 117
        assert "stopShortname" in dumped["stops"][0]

    def test_unknown_fields_ignored(self) -> None:
        """Test new upstream fields do not break parsing."""
        stop = Stop.model_validate(stop_entry(117, brandNewField="x"))

        assert not hasattr(stop, "brandNewField")


class TestDepartureSchema:
    """Tests for the departure schemas."""

    def test_parses_departure(self) -> None:
        """Test a well-formed departure parses."""
        departure = Departure.model_validate(departure_entry(5))

        assert departure.trip_id == 5
        assert departure.delay_in_seconds == 30
        assert departure.status == "REALTIME"

    def test_nullable_numeric_fields(self) -> None:
        """Test empty strings stand in for null numbers."""
        departure = Departure.model_validate(
            departure_entry(5, delayInSeconds="", vehicleCode="", vehicleId="77", routeShortName=2)
        )

        assert departure.delay_in_seconds is None
        assert departure.vehicle_code is None
        assert departure.vehicle_id == 77
        assert departure.route_short_name == "2"

    def test_missing_required_field(self) -> None:
        """Test required departure fields are enforced."""
        entry = departure_entry(5)
        del entry["estimatedTime"]

        with pytest.raises(ValidationError):
            Departure.model_validate(entry)

    def test_all_departures_keyed_by_stop_id(self) -> None:
        """Test the all-stops document is a mapping of departures documents."""
        document = AllDeparturesResponse.model_validate(
            {"117": departures_document(departure_entry(1)), "199": departures_document()}
        )

        assert set(document.root) == {"117", "199"}
        assert isinstance(document.root["117"], DeparturesResponse)
        assert len(document.root["117"].departures) == 1
        assert document.root["199"].departures == []


class TestParseStopIds:
    """Tests for parse_stop_ids."""

    @pytest.mark.parametrize("raw", [None, "", "  "])
    def test_no_filter(self, raw: str | None) -> None:
        """Test missing or blank input means no filter."""
        assert parse_stop_ids(raw) is None

    def test_parses_and_deduplicates(self) -> None:
        """Test duplicates are dropped and first-seen order is kept."""
        assert parse_stop_ids("199, 117,199,3") == [199, 117, 3]

    @pytest.mark.parametrize("raw", ["abc", "1,,2", "0", "-5", "1.5", "117,x", "١٢"])
    def test_rejects_invalid_elements(self, raw: str) -> None:
        """Test any element that is not a positive integer rejects the whole list."""
        with pytest.raises(ValueError, match="positive integers"):
            parse_stop_ids(raw)
