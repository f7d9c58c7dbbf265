"""
Memory module for the interview system.
Provides session record storage.
"""

from .session_store import SessionStore, InMemorySessionStore, session_store

__all__ = ['SessionStore', 'InMemorySessionStore', 'session_store']
