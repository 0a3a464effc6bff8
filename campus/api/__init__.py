"""HTTP API for Campus RBAC."""
