"""Configuration management package."""
