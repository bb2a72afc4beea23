"""Pure domain values and immutable input records."""
