"""Permission catalog.

Numeric ids are the authorization contract shared with every client and
stored in role grants. Never renumber or repurpose an id; add new ones.
"""

from enum import IntEnum
from typing import Dict


class PermissionId(IntEnum):
    # Identity administration
    USER_VIEW = 1
    USER_CREATE = 2
    USER_UPDATE = 3
    USER_DELETE = 4

    # Roles and permissions
    ROLE_VIEW = 5
    ROLE_CREATE = 6
    ROLE_UPDATE = 7
    ROLE_DELETE = 8
    ROLE_ASSIGN = 9
    PERMISSION_VIEW = 10

    # Security and administration
    AUDIT_VIEW = 11
    ADMIN_ACCESS = 12

    # Document management
    DMS_VIEW = 20
    DMS_DOCUMENT_EDIT = 21
    DMS_DOCUMENT_APPROVE = 22
    DMS_DOCUMENT_DELETE = 23
    DMS_DOCUMENT_SUBMIT = 24
    DMS_DOCUMENT_REJECT = 25
    DMS_DOCUMENT_OBSOLETE = 26
    DMS_DOCUMENT_CREATE = 31
    DMS_DOCUMENT_READ = 32


PERMISSION_DESCRIPTIONS: Dict[PermissionId, str] = {
    PermissionId.USER_VIEW: "View identities of the tenant",
    PermissionId.USER_CREATE: "Create identities",
    PermissionId.USER_UPDATE: "Update, deactivate and reset MFA of identities",
    PermissionId.USER_DELETE: "Delete identities",
    PermissionId.ROLE_VIEW: "View roles",
    PermissionId.ROLE_CREATE: "Create roles",
    PermissionId.ROLE_UPDATE: "Update roles and their permissions",
    PermissionId.ROLE_DELETE: "Delete non-system roles",
    PermissionId.ROLE_ASSIGN: "Assign roles to identities",
    PermissionId.PERMISSION_VIEW: "View the permission catalog",
    PermissionId.AUDIT_VIEW: "View audit logs and security alerts",
    PermissionId.ADMIN_ACCESS: "Administer sessions and audit retention",
    PermissionId.DMS_VIEW: "Access the document area",
    PermissionId.DMS_DOCUMENT_EDIT: "Edit and revise documents",
    PermissionId.DMS_DOCUMENT_APPROVE: "Approve or reject submitted documents",
    PermissionId.DMS_DOCUMENT_DELETE: "Delete draft documents",
    PermissionId.DMS_DOCUMENT_SUBMIT: "Submit drafts for approval",
    PermissionId.DMS_DOCUMENT_REJECT: "Reject submitted documents",
    PermissionId.DMS_DOCUMENT_OBSOLETE: "Mark approved or expired documents obsolete",
    PermissionId.DMS_DOCUMENT_CREATE: "Create documents",
    PermissionId.DMS_DOCUMENT_READ: "Read documents",
}

# Built-in roles seeded for every tenant
ADMIN_ROLE_NAME = "ADMIN"
USER_ROLE_NAME = "USER"

SYSTEM_ROLE_PERMISSIONS = {
    ADMIN_ROLE_NAME: frozenset(PermissionId),
    USER_ROLE_NAME: frozenset({
        PermissionId.DMS_VIEW,
        PermissionId.DMS_DOCUMENT_READ,
        PermissionId.DMS_DOCUMENT_CREATE,
        PermissionId.DMS_DOCUMENT_EDIT,
        PermissionId.DMS_DOCUMENT_SUBMIT,
    }),
}
