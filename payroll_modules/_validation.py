"""
Shared request validation for module services.

Every public write takes the organization and the acting user explicitly;
nothing is inferred from an ambient security context.
"""

from __future__ import annotations

from uuid import UUID

from payroll_kernel.exceptions import MissingOrganizationError, UnauthenticatedActorError


def require_context(organization_id: UUID | None, actor_id: UUID | None, operation: str) -> None:
    """Reject a request lacking an organization or an actor.

    Raises:
        MissingOrganizationError, UnauthenticatedActorError
    """
    if organization_id is None:
        raise MissingOrganizationError(operation)
    if actor_id is None:
        raise UnauthenticatedActorError(operation)
