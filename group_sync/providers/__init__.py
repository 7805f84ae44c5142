"""Directory provider adapters."""
