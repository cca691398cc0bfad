"""Role-based access control: permission catalog, resolver and role administration"""

from .permissions import PermissionId

__all__ = ["PermissionId"]
