"""
Scraper services.

- crawl_session: run-scoped fetch pipeline (robots, rate limit, SSRF, httpx)
- discovery: sitemap/listing discovery of scrape targets
- dry_run: fetch + extract + normalize smoke harness without writes
- gates: source compliance gates
- visibility: recompute of the currently visible price set
- offer_validator / drift_detector: offer checks and drift rules
- sitemap_parser / link_extractor: parsing helpers for discovery
"""
