"""STMS — scheduled keepalive checks and reminders."""
