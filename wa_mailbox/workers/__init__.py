"""Worker endpoints called by schedulers."""
