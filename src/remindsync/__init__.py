"""remindsync: local reminders with recurring schedules and WebDAV sync."""

__version__ = "0.1.0"
