"""Teamleader CRM integration backend: OAuth token lifecycle and company sync."""

__version__ = "0.1.0"
