"""HTTP API for the zap protocol."""
