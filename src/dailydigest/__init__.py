"""Daily Digest core.

Privacy-tiered activity abstraction: sanitize a day of browser, search,
AI-assistant and commit records, classify them, extract cross-day patterns,
and render the most private prompt representation a provider may see.
"""

__version__ = "0.1.0"
