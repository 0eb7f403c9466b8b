"""HTTP API for the settlement engine."""
