"""Assistant-facing layer: tools, prompts, client and conversation session."""
