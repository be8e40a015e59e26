from .session_store import InMemorySessionStore, SessionStore, SQLiteSessionStore

__all__ = ["InMemorySessionStore", "SessionStore", "SQLiteSessionStore"]
