"""SQLite persistence: connection handler, ops mixins and repositories."""
