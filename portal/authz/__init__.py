"""Per-route access control (authentication and provider grants)."""
