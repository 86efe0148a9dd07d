"""Configuration and build backends."""
