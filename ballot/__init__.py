"""Polls, votes and coin votes over PostgreSQL."""
