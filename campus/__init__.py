"""Campus RBAC: role-based access control for the school management platform."""

__version__ = "0.3.0"
