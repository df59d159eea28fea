"""Approval workflow, its states and Slack UI."""
