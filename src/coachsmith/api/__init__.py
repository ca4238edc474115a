"""HTTP boundary for the coach service."""
