"""Local storage - SQLite repositories for users, transactions and settings."""
