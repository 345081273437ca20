"""
Reminder subsystem.

Components:
- models.py: data structures (Task, RecurringTask, ReminderRecord, AppSettings)
- store.py: SQLite-backed storage, snapshot export and merge upserts
- recurrence.py: next-trigger computation for every repeat mode
- scheduler.py: asyncio timers that fire reminders and re-arm recurring ones
- api.py: user-level operations used by the CLI
"""
