"""
Knowledge-search provider integration.

Responsibilities:
- Define the provider contract the search pipeline depends on.
- Manage Groq API configuration and credentials.
- Ask the Groq LLM for restaurant candidates as raw JSON records.
- Translate client failures into ``ProviderError`` with a status hint.
"""
