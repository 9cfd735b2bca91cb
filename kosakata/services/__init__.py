"""Domain services backing the HTTP layer."""
