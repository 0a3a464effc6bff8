"""Request and response schemas for the Campus RBAC API."""
