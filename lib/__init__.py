"""Platform integration libraries (chat connections)."""
