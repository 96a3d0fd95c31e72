"""Persistence for sessions and users (in-process or PostgreSQL)."""
