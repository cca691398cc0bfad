"""Warden: trust-and-workflow kernel for multi-tenant document management."""

__version__ = "0.1.0"
