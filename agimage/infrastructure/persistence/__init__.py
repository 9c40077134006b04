"""JSON-file persistence for accounts and sessions."""
