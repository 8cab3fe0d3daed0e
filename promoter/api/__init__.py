"""HTTP API for Promoter."""
