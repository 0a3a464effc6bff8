"""Database layer for Campus RBAC."""
