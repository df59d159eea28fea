"""Long-running process entry points."""
