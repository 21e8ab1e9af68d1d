"""Application-level helpers: logging, monitoring endpoints and feature flags."""
