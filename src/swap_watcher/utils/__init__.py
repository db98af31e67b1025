"""Chain access and encoding helpers for the swap watcher."""
