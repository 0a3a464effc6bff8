"""API routers for Campus RBAC."""

from . import roles, permissions, user_roles

__all__ = ["roles", "permissions", "user_roles"]
