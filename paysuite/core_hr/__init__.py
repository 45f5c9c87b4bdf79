"""Core HR module — Employee master data consumed by payroll."""

from paysuite.core_hr.models import Employee

__all__ = ["Employee"]
