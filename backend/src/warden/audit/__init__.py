"""Tamper-evident, sanitized audit trail."""
