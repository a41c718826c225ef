"""User profile endpoints (avatar, roster)."""
