"""Camera interface and implementations."""
