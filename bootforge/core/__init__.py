"""Bootforge core: planning, fetching, building, caching, validating."""
