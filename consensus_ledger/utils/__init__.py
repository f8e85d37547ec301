"""Utility helpers."""

from .dates import add_business_days, days_until, default_deadline

__all__ = ["add_business_days", "default_deadline", "days_until"]
