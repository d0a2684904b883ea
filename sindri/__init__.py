"""Sindri — suspend/resume lifecycle and extension management for a remote dev VM."""

__version__ = "0.1.0"
