"""Document review and versioning engine."""
