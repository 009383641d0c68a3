"""Core engine and runtime settings for makerchecker."""
