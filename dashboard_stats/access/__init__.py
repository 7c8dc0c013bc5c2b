from .guard import TenantAccessGuard

__all__ = ["TenantAccessGuard"]
