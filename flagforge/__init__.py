"""FlagForge: feature definition compiler and SDK payload invalidation."""
