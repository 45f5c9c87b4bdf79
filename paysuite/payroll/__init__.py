"""Payroll module — formula engine, payslip builder and run lifecycle."""
