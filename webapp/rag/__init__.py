"""Retrieval-augmented generation: intent, retrieval, sports context, prompts, generation."""
