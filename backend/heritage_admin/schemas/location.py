from __future__ import annotations

import math
import re
import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DAYS_OF_WEEK = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def validate_latitude(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    if not math.isfinite(value):
        raise ValueError("Latitude must be a finite number")
    if not -90.0 <= value <= 90.0:
        raise ValueError("Latitude must be between -90 and 90")
    return value


def validate_longitude(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    if not math.isfinite(value):
        raise ValueError("Longitude must be a finite number")
    if not -180.0 <= value <= 180.0:
        raise ValueError("Longitude must be between -180 and 180")
    return value


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = value.strip()
    return v or None


class MuseumHoursEntry(BaseModel):
    day: Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
    open: Optional[str] = Field(default=None, description="HH:MM, 24h")
    close: Optional[str] = Field(default=None, description="HH:MM, 24h")
    closed: bool = False
    note: Optional[str] = Field(default=None, max_length=200)

    @field_validator("day", mode="before")
    @classmethod
    def lower_day(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("open", "close")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not _HHMM_RE.match(v):
            raise ValueError("Time must be HH:MM (24-hour)")
        return v

    @model_validator(mode="after")
    def check_range(self) -> "MuseumHoursEntry":
        if self.closed:
            self.open = None
            self.close = None
            return self
        if self.open is None or self.close is None:
            raise ValueError(f"{self.day}: open and close are required unless closed")
        # zero-padded HH:MM compares correctly as text
        if self.open >= self.close:
            raise ValueError(f"{self.day}: open must be before close")
        return self


class MuseumHoursUpdate(BaseModel):
    hours: List[MuseumHoursEntry] = Field(default_factory=list)

    @field_validator("hours")
    @classmethod
    def one_entry_per_day(cls, v: List[MuseumHoursEntry]) -> List[MuseumHoursEntry]:
        seen = set()
        for entry in v:
            if entry.day in seen:
                raise ValueError(f"Duplicate entry for {entry.day}")
            seen.add(entry.day)
        return sorted(v, key=lambda e: DAYS_OF_WEEK.index(e.day))


class LocationBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    address: Optional[str] = Field(default=None, max_length=500)
    audio_url: Optional[str] = Field(default=None, max_length=1000)
    featured: bool = False
    active: bool = True


class LocationCreate(LocationBase):
    lat: Optional[float] = None
    lng: Optional[float] = None

    @field_validator("lat")
    @classmethod
    def check_lat(cls, v: Optional[float]) -> Optional[float]:
        return validate_latitude(v)

    @field_validator("lng")
    @classmethod
    def check_lng(cls, v: Optional[float]) -> Optional[float]:
        return validate_longitude(v)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("address", "description", "audio_url")
    @classmethod
    def clean_optional(cls, v: Optional[str]) -> Optional[str]:
        return _clean_text(v)

    @model_validator(mode="after")
    def coordinates_pair(self) -> "LocationCreate":
        if (self.lat is None) != (self.lng is None):
            raise ValueError("Provide both lat and lng, or neither")
        if self.lat is None and not self.address:
            raise ValueError("Provide coordinates or an address to geocode")
        return self


class LocationUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    address: Optional[str] = Field(default=None, max_length=500)
    audio_url: Optional[str] = Field(default=None, max_length=1000)
    lat: Optional[float] = None
    lng: Optional[float] = None
    featured: Optional[bool] = None
    active: Optional[bool] = None

    @field_validator("lat")
    @classmethod
    def check_lat(cls, v: Optional[float]) -> Optional[float]:
        return validate_latitude(v)

    @field_validator("lng")
    @classmethod
    def check_lng(cls, v: Optional[float]) -> Optional[float]:
        return validate_longitude(v)

    @field_validator("address", "description", "audio_url")
    @classmethod
    def clean_optional(cls, v: Optional[str]) -> Optional[str]:
        return _clean_text(v)

    @model_validator(mode="after")
    def coordinates_pair(self) -> "LocationUpdate":
        lat_set = "lat" in self.model_fields_set
        lng_set = "lng" in self.model_fields_set
        if lat_set != lng_set:
            raise ValueError("Provide both lat and lng, or neither")
        if lat_set and (self.lat is None or self.lng is None):
            raise ValueError("Coordinates cannot be cleared")
        return self


class LocationOut(LocationBase):
    id: uuid.UUID
    tenant_id: uuid.UUID
    lat: float
    lng: float
    image_urls: List[str] = []
    hours: List[MuseumHoursEntry] = []

    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GeocodeRequest(BaseModel):
    address: str = Field(..., min_length=3, max_length=500)


class GeocodeOut(BaseModel):
    lat: float
    lng: float
    display_name: Optional[str] = None


class ImageDelete(BaseModel):
    url: str = Field(..., min_length=1)
