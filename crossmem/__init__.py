"""Cross-session conversational memory for assistant sessions."""
