"""Salary Pydantic v2 schemas — request/response validation."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from paysuite.common.constants import ComponentNature

COMPONENT_CODE_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"


# ═════════════════════════════════════════════════════════════════════
# Salary Component
# ═════════════════════════════════════════════════════════════════════


class SalaryComponentCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50, pattern=COMPONENT_CODE_PATTERN)
    name: str = Field(..., min_length=1, max_length=200)
    nature: ComponentNature = ComponentNature.income
    formula: str = Field(default="", max_length=2000)
    fixed_value: Optional[Decimal] = None
    is_taxable: bool = False
    is_system_defined: bool = False


class SalaryComponentUpdate(BaseModel):
    """Partial update; only supplied fields change."""

    code: Optional[str] = Field(default=None, min_length=1, max_length=50, pattern=COMPONENT_CODE_PATTERN)
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    nature: Optional[ComponentNature] = None
    formula: Optional[str] = Field(default=None, max_length=2000)
    fixed_value: Optional[Decimal] = None
    is_taxable: Optional[bool] = None
    is_active: Optional[bool] = None


class SalaryComponentOut(BaseModel):
    """Salary component definition."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str
    nature: ComponentNature
    formula: str = ""
    fixed_value: Optional[Decimal] = None
    is_taxable: bool = False
    is_system_defined: bool = False
    is_active: bool = True


class SalaryComponentListResponse(BaseModel):
    data: List[SalaryComponentOut]
    total: int


# ═════════════════════════════════════════════════════════════════════
# Salary Template
# ═════════════════════════════════════════════════════════════════════


class SalaryTemplateCreate(BaseModel):
    """Template body; ``component_codes`` order is the evaluation order."""

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    component_codes: List[str] = Field(default_factory=list)
    is_active: bool = True


class SalaryTemplateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    is_active: bool = True
    components: List[SalaryComponentOut] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SalaryTemplateListResponse(BaseModel):
    data: List[SalaryTemplateOut]
    total: int
