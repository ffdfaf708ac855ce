"""Core engine for zen: cache, provider runtime, field mapper, sync engine."""
