"""
Background Jobs for the consensus ledger.

- reminder_cron: deadline maintenance and vote reminders
"""

from .reminder_cron import run_reminder_job

__all__ = ["run_reminder_job"]
