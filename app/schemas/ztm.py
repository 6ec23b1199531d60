"""Pydantic schemas for the ZTM Gdansk open data feed.

The feed is loosely typed: numeric fields sometimes arrive as strings, empty
strings stand in for null, and descriptive fields are occasionally missing.
Each field runs through a coerce-or-null helper before strict validation so
the tolerance rules stay in one visible place.
"""

import math
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, RootModel, field_validator
from pydantic.alias_generators import to_camel

# ==================== Coercion Helpers ====================


def coerce_nullable_int(value: Any) -> Any:  # noqa: ANN401
    """
    Normalise an upstream integer field.

    Empty (or blank) strings become None, integral numeric strings and integral
    floats become int. Anything else is returned unchanged for validation to reject.
    """
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            return int(stripped)
        except ValueError:
            try:
                number = float(stripped)
            except ValueError:
                return value
            return int(number) if number.is_integer() else value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def coerce_nullable_float(value: Any) -> Any:  # noqa: ANN401
    """Normalise an upstream decimal field: empty string to None, finite numeric strings to float."""
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            number = float(stripped)
        except ValueError:
            return value
        return number if math.isfinite(number) else value
    return value


def coerce_nullable_str(value: Any) -> Any:  # noqa: ANN401
    """Normalise an upstream text field: numbers are rendered as strings (stop codes keep leading zeros)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    return value


class ZtmModel(BaseModel):
    """Base for feed documents: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ==================== Stop Directory ====================


class Stop(ZtmModel):
    """Stop directory entry."""

    stop_id: int
    stop_code: str | None = None
    stop_name: str | None = None
    stop_shortname: int | None = None
    stop_desc: str | None = None
    sub_name: str | None = None
    date: str | None = None
    zone_id: int | None = None
    zone_name: str | None = None
    wheelchair_boarding: int | None = None
    virtual: int | None = None
    nonpassenger: int | None = None
    depot: int | None = None
    ticket_zone_border: int | None = None
    on_demand: int | None = None
    activation_date: str | None = None
    stop_lat: float | None = None
    stop_lon: float | None = None
    type: str | None = None
    stop_url: str | None = None
    location_type: str | None = None
    parent_station: str | None = None
    stop_timezone: str | None = None

    @field_validator(
        "stop_id",
        "stop_shortname",
        "zone_id",
        "wheelchair_boarding",
        "virtual",
        "nonpassenger",
        "depot",
        "ticket_zone_border",
        "on_demand",
        mode="before",
    )
    @classmethod
    def _coerce_ints(cls, v: Any) -> Any:  # noqa: ANN401
        return coerce_nullable_int(v)

    @field_validator("stop_lat", "stop_lon", mode="before")
    @classmethod
    def _coerce_floats(cls, v: Any) -> Any:  # noqa: ANN401
        return coerce_nullable_float(v)

    @field_validator(
        "stop_code",
        "stop_name",
        "stop_desc",
        "sub_name",
        "date",
        "zone_name",
        "activation_date",
        "type",
        "stop_url",
        "location_type",
        "parent_station",
        "stop_timezone",
        mode="before",
    )
    @classmethod
    def _coerce_strs(cls, v: Any) -> Any:  # noqa: ANN401
        return coerce_nullable_str(v)


class StopsResponse(ZtmModel):
    """Stop directory document."""

    last_update: str
    stops: list[Stop]


# ==================== Departures ====================


class Departure(ZtmModel):
    """Estimated departure from a stop."""

    id: str
    delay_in_seconds: int | None = None
    estimated_time: str
    headsign: str | None = None
    route_id: int | None = None
    route_short_name: str | None = None
    scheduled_trip_start_time: str | None = None
    trip_id: int | None = None
    status: str
    theoretical_time: str | None = None
    timestamp: str
    trip: int | None = None
    vehicle_code: int | None = None
    vehicle_id: int | None = None
    vehicle_service: str | None = None

    @field_validator(
        "delay_in_seconds",
        "route_id",
        "trip_id",
        "trip",
        "vehicle_code",
        "vehicle_id",
        mode="before",
    )
    @classmethod
    def _coerce_ints(cls, v: Any) -> Any:  # noqa: ANN401
        return coerce_nullable_int(v)

    @field_validator(
        "id",
        "headsign",
        "route_short_name",
        "scheduled_trip_start_time",
        "theoretical_time",
        "vehicle_service",
        mode="before",
    )
    @classmethod
    def _coerce_strs(cls, v: Any) -> Any:  # noqa: ANN401
        return coerce_nullable_str(v)


class DeparturesResponse(ZtmModel):
    """Departures document for one stop."""

    last_update: str
    departures: list[Departure]


class AllDeparturesResponse(RootModel[dict[str, DeparturesResponse]]):
    """Departures for every stop, keyed by stop id."""


# ==================== Query Parsing ====================


def parse_stop_ids(raw: str | None) -> list[int] | None:
    """
    Parse a comma-separated list of positive stop ids.

    Duplicates are dropped, first occurrence order is kept. Blank input means
    "no filter".

    Args:
        raw: Query parameter value, e.g. "117,199"

    Returns:
        Unique stop ids, or None when no filter was given

    Raises:
        ValueError: If any element is not a positive integer
    """
    if raw is None or not raw.strip():
        return None

    stop_ids: list[int] = []
    for part in raw.split(","):
        token = part.strip()
        if not (token.isascii() and token.isdigit()) or int(token) <= 0:
            msg = f"stopIds must be a comma-separated list of positive integers, got {token!r}"
            raise ValueError(msg)
        stop_id = int(token)
        if stop_id not in stop_ids:
            stop_ids.append(stop_id)
    return stop_ids


# ==================== Set Board Schemas ====================


class StopDeparturesError(BaseModel):
    """Why departures for one stop could not be fetched."""

    code: str
    message: str
    status: int


class StopDeparturesResult(BaseModel):
    """Departure outcome for one item of a set."""

    ok: bool
    item_id: UUID
    stop_id: int
    position: int
    last_update: str | None = None
    departures: list[Departure] | None = None
    error: StopDeparturesError | None = None


class SetDeparturesResponse(BaseModel):
    """Departure board for a set, one result per item in position order."""

    ok: bool
    set_id: UUID
    fetched_at: datetime
    results: list[StopDeparturesResult]


class SetStopEntry(BaseModel):
    """Set item joined with its stop directory entry."""

    item_id: UUID
    stop_id: int
    position: int
    stop: Stop | None


class SetStopsResponse(BaseModel):
    """Stop details for every item in a set."""

    set_id: UUID
    stops: list[SetStopEntry]
    fetched_at: datetime
    stops_last_update: str
