"""
Connectors for action-relay.

Modules:
- rss: RSS/Atom feed with a last-seen-link cursor
- weather: daily weather forecast feed
- mapper: `{field}` template text mapper
- web: HTTP delivery sink
"""

__all__ = [
    "mapper",
    "rss",
    "weather",
    "web",
]
