"""Configuration, persistence, logging and error types."""
