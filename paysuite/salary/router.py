"""Salary router — salary component catalog and salary templates.

Reads require hr_admin; writes require hr_admin as well (system_admin inherits).
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from paysuite.auth.dependencies import require_role
from paysuite.common.constants import UserRole
from paysuite.core_hr.models import Employee
from paysuite.database import get_db
from paysuite.salary.schemas import (
    SalaryComponentCreate,
    SalaryComponentListResponse,
    SalaryComponentOut,
    SalaryComponentUpdate,
    SalaryTemplateCreate,
    SalaryTemplateListResponse,
    SalaryTemplateOut,
)
from paysuite.salary.service import SalaryService

router = APIRouter(prefix="", tags=["salary"])

_salary_admin = require_role(UserRole.hr_admin, UserRole.system_admin)


# ── GET /components ──────────────────────────────────────────────────

@router.get("/components", response_model=SalaryComponentListResponse)
async def list_components(
    is_active: Optional[bool] = Query(True),
    employee: Employee = Depends(_salary_admin),
    db: AsyncSession = Depends(get_db),
):
    """List salary components (HR/Admin only)."""
    components = await SalaryService.get_components(db, is_active=is_active)
    return SalaryComponentListResponse(
        data=[SalaryComponentOut.model_validate(c) for c in components],
        total=len(components),
    )


# ── POST /components ─────────────────────────────────────────────────

@router.post("/components", response_model=SalaryComponentOut, status_code=201)
async def create_component(
    body: SalaryComponentCreate,
    employee: Employee = Depends(_salary_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a salary component; the code doubles as its formula variable name."""
    component = await SalaryService.create_component(db, body, actor_id=employee.id)
    return SalaryComponentOut.model_validate(component)


# ── PUT /components/{component_id} ───────────────────────────────────

@router.put("/components/{component_id}", response_model=SalaryComponentOut)
async def update_component(
    component_id: uuid.UUID,
    body: SalaryComponentUpdate,
    employee: Employee = Depends(_salary_admin),
    db: AsyncSession = Depends(get_db),
):
    component = await SalaryService.update_component(
        db, component_id, body, actor_id=employee.id,
    )
    return SalaryComponentOut.model_validate(component)


# ── DELETE /components/{component_id} ────────────────────────────────

@router.delete("/components/{component_id}", status_code=204)
async def delete_component(
    component_id: uuid.UUID,
    employee: Employee = Depends(_salary_admin),
    db: AsyncSession = Depends(get_db),
):
    await SalaryService.delete_component(db, component_id, actor_id=employee.id)


# ── GET /templates ───────────────────────────────────────────────────

@router.get("/templates", response_model=SalaryTemplateListResponse)
async def list_templates(
    employee: Employee = Depends(_salary_admin),
    db: AsyncSession = Depends(get_db),
):
    templates = await SalaryService.get_templates(db)
    return SalaryTemplateListResponse(
        data=[SalaryTemplateOut.model_validate(t) for t in templates],
        total=len(templates),
    )


# ── POST /templates ──────────────────────────────────────────────────

@router.post("/templates", response_model=SalaryTemplateOut, status_code=201)
async def create_template(
    body: SalaryTemplateCreate,
    employee: Employee = Depends(_salary_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a template; components are evaluated in the order given."""
    template = await SalaryService.create_template(db, body, actor_id=employee.id)
    return SalaryTemplateOut.model_validate(template)


# ── GET /templates/{template_id} ─────────────────────────────────────

@router.get("/templates/{template_id}", response_model=SalaryTemplateOut)
async def get_template(
    template_id: uuid.UUID,
    employee: Employee = Depends(_salary_admin),
    db: AsyncSession = Depends(get_db),
):
    template = await SalaryService.get_template(db, template_id)
    return SalaryTemplateOut.model_validate(template)


# ── PUT /templates/{template_id} ─────────────────────────────────────

@router.put("/templates/{template_id}", response_model=SalaryTemplateOut)
async def replace_template(
    template_id: uuid.UUID,
    body: SalaryTemplateCreate,
    employee: Employee = Depends(_salary_admin),
    db: AsyncSession = Depends(get_db),
):
    """Replace the template's ordered component list."""
    template = await SalaryService.replace_template(
        db, template_id, body, actor_id=employee.id,
    )
    return SalaryTemplateOut.model_validate(template)
