"""Shared logging and configuration helpers."""
