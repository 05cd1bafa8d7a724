__all__ = [
    "models",
    "llm_provider",
    "logging",
]
