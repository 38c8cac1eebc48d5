"""Tour service."""
