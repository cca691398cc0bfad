"""Base utilities for multi-tenant background tasks.

Every tenant-scoped Celery task receives tenant_id explicitly as a keyword
argument, validated before the task body runs.

Task Signature Pattern:
======================

@celery_app.task(base=TenantTask, bind=True)
def my_task(self, resource_id: int, tenant_id: int) -> Dict[str, Any]:
    session = SessionLocal()
    try:
        resource = session.query(Resource).filter(
            Resource.id == resource_id,
            Resource.tenant_id == tenant_id
        ).first()
        ...
    finally:
        session.close()

Enqueueing Pattern:
==================

my_task.delay(resource_id=resource.id, tenant_id=auth.tenant_id)

tenant_id MUST come from the server side (the authenticated context or the
record itself), never from a request body.
"""

from celery import Task

from ..database import SessionLocal
from ..models.tenant import Tenant


def validate_tenant_id(tenant_id) -> int:
    """Check tenant_id is an integer referencing an existing tenant.

    Raises:
        ValueError: If tenant_id is malformed or the tenant doesn't exist
    """
    try:
        tenant_pk = int(tenant_id)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid tenant_id '{tenant_id}': {e}")

    session = SessionLocal()
    try:
        if session.get(Tenant, tenant_pk) is None:
            raise ValueError(f"Tenant {tenant_pk} does not exist")
    finally:
        session.close()

    return tenant_pk


class TenantTask(Task):
    """Base Celery task class with tenant validation.

    Tasks using this base class must be called with tenant_id as a keyword
    argument.
    """

    def __call__(self, *args, **kwargs):
        if "tenant_id" not in kwargs:
            raise ValueError(f"Task {self.name} requires tenant_id keyword argument")
        kwargs["tenant_id"] = validate_tenant_id(kwargs["tenant_id"])
        return super().__call__(*args, **kwargs)
