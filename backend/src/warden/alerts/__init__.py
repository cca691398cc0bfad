"""Security alerts derived from audit events."""
