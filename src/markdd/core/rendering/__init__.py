"""Two-phase rendering: placeholder compilation and asynchronous post-processing."""
