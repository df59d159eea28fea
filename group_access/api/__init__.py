"""HTTP surface (health checks only)."""
