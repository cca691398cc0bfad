"""Security tests for warden

This package contains security-focused tests including:
- SQL injection prevention
- Authentication bypass attempts
- Tenant escape/isolation attacks
"""
