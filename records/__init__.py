"""Protected records and the resource gateway service."""
