"""
Utility functions for the scraper application.

- url.py: URL canonicalization, registrable domains and identity keys
- normalization.py: price, availability and ammunition attribute parsing
"""
