"""
Tenant access guard.

Turns an ``AuthenticationContext`` into a ``TenantContext`` and answers
whether that context may read a given tenant's statistics. Nothing here
consults global state: the context is passed in on every call.
"""

from typing import Optional

import structlog

from ..errors import AccessDenied, Unauthenticated, UnresolvedPrincipal, error_context
from ..models import (
    AuthenticationContext,
    Bound,
    TenantBinding,
    TenantContext,
    UNBOUND,
    UserRecord,
)
from ..repositories import UserDirectory

logger = structlog.get_logger(__name__)


class TenantAccessGuard:
    """Resolves principals and enforces tenant isolation."""

    def __init__(self, user_directory: Optional[UserDirectory] = None):
        self.user_directory = user_directory

    async def get_current_user(self, auth: AuthenticationContext) -> Optional[UserRecord]:
        """Materialize the principal.

        Returns None when nobody is authenticated. A bare username is
        looked up in the user directory; if there is no directory, the
        user is unknown, or the lookup itself fails, ``UnresolvedPrincipal``
        is raised rather than returning a partial identity.
        """
        if not auth.authenticated or auth.principal is None:
            logger.warning("No authenticated principal")
            return None

        principal = auth.principal
        if isinstance(principal, UserRecord):
            return principal

        if isinstance(principal, str):
            return await self._lookup(principal)

        raise UnresolvedPrincipal(f"Unsupported principal type: {type(principal).__name__}")

    async def _lookup(self, username: str) -> UserRecord:
        if self.user_directory is None:
            raise UnresolvedPrincipal("No user directory configured to resolve principal", identifier=username)

        logger.debug("Resolving principal through user directory", username=username)
        try:
            user = await self.user_directory.find_by_username(username)
        except Exception as exc:
            logger.error("User directory lookup failed", username=username, error=str(exc))
            raise UnresolvedPrincipal("User directory lookup failed", identifier=username) from exc

        if user is None:
            raise UnresolvedPrincipal("Principal not found in user directory", identifier=username)
        return user

    async def resolve_context(self, auth: AuthenticationContext) -> TenantContext:
        """Build the tenant context for one request."""
        user = await self.get_current_user(auth)
        if user is None:
            raise Unauthenticated("User is not authenticated")
        return TenantContext.for_user(user)

    def get_current_user_hotel_id(self, context: TenantContext) -> TenantBinding:
        """Tenant binding of the context.

        An admin without a binding gets ``UNBOUND`` and the caller picks
        the tenant; every other role must be bound.
        """
        if context.tenant_id is not None:
            return Bound(context.tenant_id)

        if context.is_admin:
            logger.warning("Admin user has no tenant binding", user_id=context.user_id)
            return UNBOUND

        raise AccessDenied("User is not bound to a hotel")

    def can_access_hotel(self, context: TenantContext, tenant_id: int) -> bool:
        if context.is_admin:
            return True
        return context.tenant_id is not None and context.tenant_id == tenant_id

    def validate_hotel_access(self, context: TenantContext, tenant_id: int) -> None:
        if not self.can_access_hotel(context, tenant_id):
            logger.warning(
                "Cross-tenant access denied",
                user_id=context.user_id,
                role=context.role.value,
                bound_tenant=context.tenant_id,
                requested_tenant=tenant_id,
            )
            raise AccessDenied(
                "No permission to access this hotel's data",
                tenant_id=tenant_id,
                context=error_context(
                    "validate_hotel_access",
                    tenant_id=tenant_id,
                    job_name=context.job_name,
                    user_id=context.user_id,
                    bound_tenant=context.tenant_id,
                ),
            )

    def resolve_tenant_id(
        self,
        context: TenantContext,
        requested: Optional[int] = None,
        fallback: Optional[int] = None,
    ) -> int:
        """Tenant id a computation runs against.

        An explicit request is validated first. Without one, the bound
        tenant is used; an unbound admin falls back to ``fallback`` and is
        denied when there is none.
        """
        if requested is not None:
            self.validate_hotel_access(context, requested)
            return requested

        binding = self.get_current_user_hotel_id(context)
        if isinstance(binding, Bound):
            return binding.tenant_id
        if fallback is not None:
            return fallback
        raise AccessDenied("Admin has no hotel binding; a hotel id must be requested explicitly")
