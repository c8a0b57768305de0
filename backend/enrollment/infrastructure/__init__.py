"""Infrastructure Layer — database access, sync-state store and cross-cutting concerns.

Invariants:
    - Infrastructure implements core Protocols; core never imports from here
    - All SQLAlchemy failures mapped to FetchError / PersistenceError / DatabaseError

Design Decisions:
    - Repositories take the session manager, not a session: each call owns one short session
"""
