"""Ledger module — cash accounts and payroll disbursements."""
