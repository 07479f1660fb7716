"""River of News: merges many RSS/Atom feeds into one deduplicated, newest-first river."""
