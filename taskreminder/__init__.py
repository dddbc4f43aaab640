"""Deadline reminders over WhatsApp with a durable, multi-worker job scheduler."""

__version__ = "0.1.0"
