"""Persistence layer: Rating Store, Event Log and Dirty-Set Tracker."""

from taste_machine.store.dirty import ClaimedMarker, DirtySet, DirtyStatus
from taste_machine.store.events import EventLog
from taste_machine.store.locks import KeyedLock
from taste_machine.store.ratings import CandidateFilter, RatingStore
from taste_machine.store.retry import RetryPolicy

__all__ = [
    "CandidateFilter",
    "ClaimedMarker",
    "DirtySet",
    "DirtyStatus",
    "EventLog",
    "KeyedLock",
    "RatingStore",
    "RetryPolicy",
]
