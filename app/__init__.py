"""Descriptor service, dev backend and settings."""
