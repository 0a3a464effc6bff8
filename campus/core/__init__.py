"""Core configuration, logging, errors and the RBAC engine."""
