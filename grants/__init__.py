"""Access grants: lifecycle manager and authorization decision."""
