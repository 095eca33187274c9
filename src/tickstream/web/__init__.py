"""HTTP transport for tickstream sessions."""
