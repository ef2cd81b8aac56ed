"""Chronicle — an LLM-narrated, stat-driven story engine."""
