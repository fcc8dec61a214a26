"""Disruption notice pipeline."""
