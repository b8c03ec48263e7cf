from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class ProjectDetails(BaseModel):
    title: str = ""
    description: str = ""
    email: str = ""
    budget: Decimal = Field(default=Decimal(0), ge=0)
    start_date: datetime | None = None
    end_date: datetime | None = None


class ProjectMilestone(BaseModel):
    title: str = Field(min_length=1)
    delivery_date: date


class SupplierResult(BaseModel):
    order_id: int  # 1-based display index shown to the user
    vendor_number: str = ""
    vendor_name: str = ""
    company_code: str = ""
    vendor_location: str = ""
    feedback_rating: float | None = None
    experience_level: str = ""
    cost_rating: str = ""
    is_active: bool = True


class SelectedSupplier(BaseModel):
    order_id: int = Field(gt=0)
    vendor_number: str
    company_code: str = ""
    vendor_name: str = ""
