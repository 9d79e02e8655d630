"""Distribution configuration and ledger schemas.

Update schemas are explicit command objects: only the fields listed here can
ever be written, anything else in the request body is rejected.
"""

from typing import Dict, List, Optional
from datetime import datetime, date
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field

from tippool.models.tips import DepartmentType, PaymentMethod


# ============== Department Schemas ==============

class DepartmentCreate(BaseModel):
    """Schema for creating a department. Required fields are checked by the service."""
    name: Optional[str] = Field(default=None, max_length=255)
    department_type: Optional[DepartmentType] = None
    distribution: Optional[Dict[int, Decimal]] = None


class DepartmentUpdate(BaseModel):
    """Update command for a department. Omitted fields are left unchanged."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    department_type: Optional[DepartmentType] = None
    distribution: Optional[Dict[int, Decimal]] = None


class DistributionSet(BaseModel):
    """Replacement distribution for a department: {category_id: percent}."""
    distribution: Dict[int, Decimal] = Field(default_factory=dict)


class DepartmentResponse(BaseModel):
    """Schema for department response."""
    id: int
    company_id: int
    name: str
    department_type: DepartmentType
    distribution: Dict[int, Decimal]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ============== Category Schemas ==============

class CategoryCreate(BaseModel):
    """Schema for creating a category."""
    department_id: Optional[int] = None
    name: Optional[str] = Field(default=None, max_length=255)
    is_dual_role: bool = False


class CategoryUpdate(BaseModel):
    """Update command for a category."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    department_id: Optional[int] = None
    is_dual_role: Optional[bool] = None


class CategoryResponse(BaseModel):
    """Schema for category response."""
    id: int
    company_id: int
    department_id: int
    name: str
    is_dual_role: bool
    department_name: Optional[str] = None
    department_type: Optional[DepartmentType] = None

    model_config = {"from_attributes": True}


# ============== Ledger Schemas ==============

class TipCreate(BaseModel):
    """Schema for recording collected tips."""
    category_id: int
    service_date: date
    gross_tips: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH
    source: str = Field(default="manual", min_length=1, max_length=50)
    user_id: Optional[int] = None


class CollectedTipResponse(BaseModel):
    """Schema for a ledger entry."""
    id: int
    user_id: int
    company_id: int
    category_id: int
    service_date: date
    gross_tips: Decimal
    net_tips: Decimal
    payment_method: PaymentMethod
    source: str
    was_collector: bool
    recorded_by: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CollectorTipsResponse(BaseModel):
    """Tips recorded by one collector over a date range."""
    user_id: int
    start_date: date
    end_date: date
    total_gross: Decimal
    items: List[CollectedTipResponse]
    total: int


class DepartmentList(BaseModel):
    items: List[DepartmentResponse]
    total: int


class CategoryList(BaseModel):
    items: List[CategoryResponse]
    total: int
