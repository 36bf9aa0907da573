"""Effective-dated progressive tax rule engine for payroll runs."""

__version__ = "1.0.0"
