"""Uniform tree-of-nodes access to remote object stores and cloud drives."""

__version__ = "0.1.0"
