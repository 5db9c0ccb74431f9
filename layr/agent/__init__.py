"""Plan generation: prompts, response parsing, validation, fallbacks and coordination."""
