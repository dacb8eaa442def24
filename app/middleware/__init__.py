"""HTTP middleware for the Convention Survey service."""
