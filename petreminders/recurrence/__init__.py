"""Recurrence engine for petreminders."""

from petreminders.recurrence.expander import expand_occurrences, effective_end
from petreminders.recurrence.locks import KeyedLocks, reminder_locks
