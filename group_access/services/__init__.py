"""Directory, chat and cache services."""
