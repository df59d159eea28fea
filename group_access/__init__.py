"""Slack bot granting time-limited Cloud Identity group membership."""
