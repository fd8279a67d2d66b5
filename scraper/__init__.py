"""
Scraper Django application.

This app discovers retailer product URLs, fetches them politely, extracts
offers through per-site adapters and gates which scraped prices become
visible.
"""
