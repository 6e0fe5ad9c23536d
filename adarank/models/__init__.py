"""Data model, metrics and the boosting engine."""
