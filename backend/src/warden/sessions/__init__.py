"""Refresh sessions: issue, validate, rotate and revoke."""
