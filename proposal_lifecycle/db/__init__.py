"""Database engine, session, and query helpers."""
