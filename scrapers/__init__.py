"""HTTP clients for web search, page extraction, and sports data."""
