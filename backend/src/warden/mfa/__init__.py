"""Multi-factor authentication: TOTP and single-use backup codes."""
