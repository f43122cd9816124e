"""Domain helpers: geo math, credibility assessment, triage pipeline, security, and logging."""
