"""Per-target installers: prepare, probe, preconditions, install, summarize."""
