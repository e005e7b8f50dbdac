from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PlanCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    price: int = Field(gt=0)  # per person, rupees
    vendorCut: Optional[int] = Field(default=None, ge=0, le=100)


class PlanOut(BaseModel):
    id: str
    vendorId: str
    name: str
    description: str = ""
    price: int
    vendorCut: int
    isActive: bool


class DepartureCreate(BaseModel):
    departureDate: datetime
    totalCapacity: int = Field(ge=0)
    pickupTime: str = ""
    pickupLocation: str = ""


class DepartureOut(BaseModel):
    id: str
    planId: str
    departureDate: str
    pickupTime: str = ""
    pickupLocation: str = ""
    totalCapacity: int
    bookedSeats: int
    availableSeats: int
    status: str
