"""Batch progress HTTP API."""
