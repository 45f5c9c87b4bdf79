"""Salary ORM models: SalaryComponent, SalaryTemplate, SalaryTemplateItem.

SQLAlchemy 2.0 async-compatible models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paysuite.common.constants import ComponentNature
from paysuite.database import Base


class SalaryComponent(Base):
    """Salary component definition (e.g. base pay, KPI commission, insurance)."""

    __tablename__ = "salary_components"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(
        sa.String(50), unique=True, nullable=False,
    )
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    nature: Mapped[ComponentNature] = mapped_column(
        sa.Enum(
            ComponentNature,
            name="component_nature",
            native_enum=False,
            length=20,
        ),
        default=ComponentNature.income,
        nullable=False,
    )
    formula: Mapped[str] = mapped_column(sa.Text, default="", nullable=False)
    fixed_value: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(15, 2))
    is_taxable: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    is_system_defined: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<SalaryComponent {self.code!r}>"


class SalaryTemplate(Base):
    """Ordered list of salary components assigned to a job role."""

    __tablename__ = "salary_templates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(
        sa.String(200), unique=True, nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    items: Mapped[list[SalaryTemplateItem]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="SalaryTemplateItem.position",
        lazy="selectin",
    )

    @property
    def components(self) -> list[SalaryComponent]:
        """Components in evaluation order."""
        return [item.component for item in self.items]

    def __repr__(self) -> str:
        return f"<SalaryTemplate {self.name!r}>"


class SalaryTemplateItem(Base):
    """One slot of a template; ``position`` fixes the evaluation order."""

    __tablename__ = "salary_template_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    template_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("salary_templates.id", ondelete="CASCADE"),
        nullable=False,
    )
    component_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("salary_components.id", ondelete="RESTRICT"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    # Relationships
    template: Mapped[SalaryTemplate] = relationship(back_populates="items")
    component: Mapped[SalaryComponent] = relationship(lazy="joined")

    __table_args__ = (
        sa.UniqueConstraint("template_id", "position", name="uq_template_item_position"),
        sa.UniqueConstraint("template_id", "component_id", name="uq_template_item_component"),
    )

    def __repr__(self) -> str:
        return f"<SalaryTemplateItem template={self.template_id} pos={self.position}>"
