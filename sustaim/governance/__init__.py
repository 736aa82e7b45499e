"""Role assignments and authorization checks."""
