"""Shared core values for the ssqs package."""

SERVICE_NAME = "ssqs"
