"""Integration tests driving real sandboxes and child processes."""
