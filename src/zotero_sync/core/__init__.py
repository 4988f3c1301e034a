"""Core infrastructure: Zotero Web API client and async bridging."""
