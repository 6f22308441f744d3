"""Structured, normalized addresses for remote nodes."""
