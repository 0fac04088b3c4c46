"""Actor directory: roles, profiles and the identity store."""
