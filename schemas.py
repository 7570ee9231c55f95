"""
Database Schemas for the Visit Feedback API

Each collection model represents a collection in MongoDB.
Collection name is the lowercase of the class name.
Request/response bodies follow the collection models.
"""

import re
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_core import PydanticCustomError

RATING_CATEGORIES = (
    "foodQuality",
    "foodTaste",
    "staffBehavior",
    "hygiene",
    "ambience",
    "serviceSpeed",
)

PHONE_PATTERN = re.compile(r"^[0-9]{10}$")
NOTE_MAX_LENGTH = 500

DineType = Literal["dine_in", "take_out"]


class Ratings(BaseModel):
    """Six 1-5 star sub-scores, in display order"""
    foodQuality: int = Field(..., ge=1, le=5)
    foodTaste: int = Field(..., ge=1, le=5)
    staffBehavior: int = Field(..., ge=1, le=5)
    hygiene: int = Field(..., ge=1, le=5)
    ambience: int = Field(..., ge=1, le=5)
    serviceSpeed: int = Field(..., ge=1, le=5)


# ----- Collections -----

class Visit(BaseModel):
    """
    One submission, embedded in Feedback.visits
    """
    location: str = Field(..., description="Outlet the customer visited")
    dineType: DineType
    ratings: Ratings
    note: str = Field("", max_length=NOTE_MAX_LENGTH)
    staffName: str = ""
    staffComment: str = ""
    createdAt: datetime
    dateKey: str = Field(..., description="UTC calendar date of createdAt, YYYY-MM-DD")


class Feedback(BaseModel):
    """
    Per-customer ledger of visits
    Collection: "feedback"
    """
    name: str = Field(..., description="Customer display name")
    phoneNumber: str = Field(..., description="10 digit phone number, unique")
    visits: List[Visit] = []
    lastVisitAt: Optional[datetime] = Field(None, description="createdAt of the newest visit")
    contactedAt: Optional[datetime] = None
    contactedBy: Optional[str] = None


class CustomerCard(BaseModel):
    """
    Visit counters per customer
    Collection: "customercard"
    """
    phoneNumber: str
    name: str
    totalVisits: int = 1
    firstVisitDate: datetime
    lastVisitDate: datetime
    visits: List[str] = Field(default_factory=list, description="Feedback ids")


# ----- Requests -----

def _required_text(value: str, label: str) -> str:
    if not value:
        raise PydanticCustomError("required", "{label} is required", {"label": label})
    return value


class FeedbackCreate(BaseModel):
    """Body of a customer submission. Fields are declared in reporting order."""
    name: str
    phoneNumber: str
    location: str
    dineType: DineType
    ratings: Ratings
    note: str = ""
    staffName: str = ""
    staffComment: str = ""

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        return _required_text(v, "Name")

    @field_validator("phoneNumber")
    @classmethod
    def phone_ten_digits(cls, v: str) -> str:
        if not PHONE_PATTERN.match(v):
            raise PydanticCustomError("phone_number", "Phone number must be exactly 10 digits")
        return v

    @field_validator("location")
    @classmethod
    def location_required(cls, v: str) -> str:
        return _required_text(v, "Location")

    @field_validator("note")
    @classmethod
    def note_length(cls, v: str) -> str:
        if len(v) > NOTE_MAX_LENGTH:
            raise PydanticCustomError("note_too_long", "Note cannot exceed 500 characters")
        return v

    @field_validator("note", "staffName", "staffComment", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return "" if v is None else v


class ContactUpdate(BaseModel):
    contactedBy: str

    @field_validator("contactedBy")
    @classmethod
    def staff_required(cls, v: str) -> str:
        return _required_text(v, "Staff name")


class AdminLoginRequest(BaseModel):
    username: str
    password: str


# ----- Responses -----

class AdminLoginResponse(BaseModel):
    token: str
    username: str
    role: str = "admin"


class TrendPoint(BaseModel):
    date: str
    foodQuality: float
    foodTaste: float
    staffBehavior: float
    hygiene: float
    ambience: float
    serviceSpeed: float


class CategoryRating(BaseModel):
    category: str
    rating: float


class VolumeBucket(BaseModel):
    name: str
    value: int


class AnalyticsData(BaseModel):
    totalFeedback: int
    averageRating: float
    responseRate: int
    topCategory: str
    weeklyTrends: List[TrendPoint]
    categoryPerformance: List[CategoryRating]
    feedbackVolume: List[VolumeBucket]
