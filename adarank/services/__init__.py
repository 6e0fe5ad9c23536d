"""Prediction and training services."""
