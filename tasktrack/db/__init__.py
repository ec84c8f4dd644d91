"""TaskTrack persistence: SQLAlchemy models, sessions and repositories."""
