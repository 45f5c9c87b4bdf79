"""Salary service layer — component catalog and ordered salary templates."""

from __future__ import annotations

import keyword
import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from paysuite.common.audit import create_audit_entry
from paysuite.common.constants import AuditAction
from paysuite.common.exceptions import ConflictError, NotFoundException, ValidationException
from paysuite.payroll.evaluator import FormulaEvaluationError, check_syntax
from paysuite.payroll.resolver import GROSS_INCOME_VAR, TOTAL_DEDUCTION_VAR
from paysuite.salary.models import SalaryComponent, SalaryTemplate, SalaryTemplateItem
from paysuite.salary.schemas import (
    SalaryComponentCreate,
    SalaryComponentUpdate,
    SalaryTemplateCreate,
)

# Names the resolver maintains itself; a component may not shadow them.
RESERVED_CODES = frozenset({GROSS_INCOME_VAR, TOTAL_DEDUCTION_VAR})


def _component_state(component: SalaryComponent) -> dict[str, Any]:
    return {
        "code": component.code,
        "name": component.name,
        "nature": component.nature.value,
        "formula": component.formula,
        "fixed_value": str(component.fixed_value) if component.fixed_value is not None else None,
        "is_active": component.is_active,
    }


def _validate_formula(formula: Optional[str]) -> None:
    if not formula:
        return
    try:
        check_syntax(formula)
    except FormulaEvaluationError as exc:
        raise ValidationException({"formula": [exc.reason]}) from exc


def _validate_code(code: str) -> None:
    if code in RESERVED_CODES:
        raise ValidationException({"code": [f"'{code}' is a reserved variable name."]})
    if keyword.iskeyword(code):
        raise ValidationException(
            {"code": [f"'{code}' is a keyword and cannot be used in formulas."]},
        )


class SalaryService:
    """Business logic for salary components and templates."""

    # ── Salary Components ─────────────────────────────────────────────

    @staticmethod
    async def get_components(
        db: AsyncSession,
        is_active: Optional[bool] = True,
    ) -> list[SalaryComponent]:
        """List salary components ordered by code."""
        stmt = select(SalaryComponent)
        if is_active is not None:
            stmt = stmt.where(SalaryComponent.is_active == is_active)
        stmt = stmt.order_by(SalaryComponent.code)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_component(
        db: AsyncSession,
        component_id: uuid.UUID,
    ) -> SalaryComponent:
        component = await db.get(SalaryComponent, component_id)
        if component is None:
            raise NotFoundException("SalaryComponent", str(component_id))
        return component

    @staticmethod
    async def _ensure_code_free(
        db: AsyncSession,
        code: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        stmt = select(SalaryComponent.id).where(SalaryComponent.code == code)
        if exclude_id is not None:
            stmt = stmt.where(SalaryComponent.id != exclude_id)
        if (await db.execute(stmt)).first() is not None:
            raise ConflictError("code", code)

    @staticmethod
    async def create_component(
        db: AsyncSession,
        data: SalaryComponentCreate,
        actor_id: Optional[uuid.UUID] = None,
    ) -> SalaryComponent:
        _validate_code(data.code)
        _validate_formula(data.formula)
        await SalaryService._ensure_code_free(db, data.code)

        component = SalaryComponent(**data.model_dump())
        db.add(component)
        await db.flush()

        await create_audit_entry(
            db,
            action=AuditAction.create.value,
            entity_type="salary_component",
            entity_id=component.id,
            actor_id=actor_id,
            new_values=_component_state(component),
        )
        return component

    @staticmethod
    async def update_component(
        db: AsyncSession,
        component_id: uuid.UUID,
        data: SalaryComponentUpdate,
        actor_id: Optional[uuid.UUID] = None,
    ) -> SalaryComponent:
        """Apply a partial update. System-defined components keep their code."""
        component = await SalaryService.get_component(db, component_id)
        changes = data.model_dump(exclude_unset=True)

        new_code = changes.get("code")
        if new_code is not None and new_code != component.code:
            if component.is_system_defined:
                raise ValidationException(
                    {"code": ["The code of a system-defined component cannot change."]}
                )
            _validate_code(new_code)
            await SalaryService._ensure_code_free(db, new_code, exclude_id=component.id)
        if "formula" in changes:
            changes["formula"] = changes["formula"] or ""
            _validate_formula(changes["formula"])

        old_state = _component_state(component)
        for field, value in changes.items():
            setattr(component, field, value)
        await db.flush()

        await create_audit_entry(
            db,
            action=AuditAction.update.value,
            entity_type="salary_component",
            entity_id=component.id,
            actor_id=actor_id,
            old_values=old_state,
            new_values=_component_state(component),
        )
        return component

    @staticmethod
    async def delete_component(
        db: AsyncSession,
        component_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Delete a component that is neither system-defined nor in use."""
        component = await SalaryService.get_component(db, component_id)
        if component.is_system_defined:
            raise ValidationException(
                {"component": [f"System component '{component.code}' cannot be deleted."]}
            )
        in_use = (
            await db.execute(
                select(func.count())
                .select_from(SalaryTemplateItem)
                .where(SalaryTemplateItem.component_id == component.id)
            )
        ).scalar_one()
        if in_use:
            raise ValidationException(
                {"component": [f"'{component.code}' is used by {in_use} template(s)."]}
            )

        old_state = _component_state(component)
        await db.delete(component)
        await db.flush()

        await create_audit_entry(
            db,
            action=AuditAction.delete.value,
            entity_type="salary_component",
            entity_id=component_id,
            actor_id=actor_id,
            old_values=old_state,
        )

    # ── Salary Templates ──────────────────────────────────────────────

    @staticmethod
    def _template_query():
        return select(SalaryTemplate).options(
            selectinload(SalaryTemplate.items).joinedload(SalaryTemplateItem.component)
        )

    @staticmethod
    async def get_templates(db: AsyncSession) -> list[SalaryTemplate]:
        result = await db.execute(
            SalaryService._template_query().order_by(SalaryTemplate.name)
        )
        return list(result.scalars().unique().all())

    @staticmethod
    async def get_template(
        db: AsyncSession,
        template_id: uuid.UUID,
    ) -> SalaryTemplate:
        result = await db.execute(
            SalaryService._template_query()
            .where(SalaryTemplate.id == template_id)
            .execution_options(populate_existing=True)
        )
        template = result.scalars().unique().first()
        if template is None:
            raise NotFoundException("SalaryTemplate", str(template_id))
        return template

    @staticmethod
    async def _resolve_codes(
        db: AsyncSession,
        codes: Sequence[str],
    ) -> list[SalaryComponent]:
        """Map codes to components, preserving order; duplicates are rejected."""
        duplicates = sorted({code for code in codes if codes.count(code) > 1})
        if duplicates:
            raise ValidationException(
                {"component_codes": [f"Duplicate component code(s): {', '.join(duplicates)}."]}
            )
        if not codes:
            return []
        result = await db.execute(
            select(SalaryComponent).where(SalaryComponent.code.in_(list(codes)))
        )
        by_code = {c.code: c for c in result.scalars().all()}
        missing = [code for code in codes if code not in by_code]
        if missing:
            raise ValidationException(
                {"component_codes": [f"Unknown component code(s): {', '.join(missing)}."]}
            )
        return [by_code[code] for code in codes]

    @staticmethod
    async def _ensure_name_free(
        db: AsyncSession,
        name: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        stmt = select(SalaryTemplate.id).where(SalaryTemplate.name == name)
        if exclude_id is not None:
            stmt = stmt.where(SalaryTemplate.id != exclude_id)
        if (await db.execute(stmt)).first() is not None:
            raise ConflictError("name", name)

    @staticmethod
    async def create_template(
        db: AsyncSession,
        data: SalaryTemplateCreate,
        actor_id: Optional[uuid.UUID] = None,
    ) -> SalaryTemplate:
        components = await SalaryService._resolve_codes(db, data.component_codes)
        await SalaryService._ensure_name_free(db, data.name)

        template = SalaryTemplate(
            name=data.name,
            description=data.description,
            is_active=data.is_active,
            items=[
                SalaryTemplateItem(component_id=c.id, position=i)
                for i, c in enumerate(components)
            ],
        )
        db.add(template)
        await db.flush()

        await create_audit_entry(
            db,
            action=AuditAction.create.value,
            entity_type="salary_template",
            entity_id=template.id,
            actor_id=actor_id,
            new_values={"name": template.name, "component_codes": list(data.component_codes)},
        )
        return await SalaryService.get_template(db, template.id)

    @staticmethod
    async def replace_template(
        db: AsyncSession,
        template_id: uuid.UUID,
        data: SalaryTemplateCreate,
        actor_id: Optional[uuid.UUID] = None,
    ) -> SalaryTemplate:
        """Replace name, description and the full ordered component list.

        Runs computed earlier keep their own snapshot of the old template.
        """
        template = await SalaryService.get_template(db, template_id)
        components = await SalaryService._resolve_codes(db, data.component_codes)
        await SalaryService._ensure_name_free(db, data.name, exclude_id=template.id)

        old_codes = [c.code for c in template.components]
        template.items.clear()
        await db.flush()

        template.name = data.name
        template.description = data.description
        template.is_active = data.is_active
        template.items.extend(
            SalaryTemplateItem(component_id=c.id, position=i)
            for i, c in enumerate(components)
        )
        await db.flush()

        await create_audit_entry(
            db,
            action=AuditAction.update.value,
            entity_type="salary_template",
            entity_id=template.id,
            actor_id=actor_id,
            old_values={"component_codes": old_codes},
            new_values={"name": template.name, "component_codes": list(data.component_codes)},
        )
        return await SalaryService.get_template(db, template.id)
