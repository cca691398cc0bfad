"""Authentication: password hashing, access tokens and request dependencies."""
