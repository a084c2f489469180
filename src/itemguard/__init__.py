"""itemguard: validation and auto-repair of LLM-generated exercise items."""

__version__ = "0.1.0"
