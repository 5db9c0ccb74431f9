"""LLM provider clients, retry policy and fallback routing."""
