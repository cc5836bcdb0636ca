"""
Crawler subsystem for the Newsmaker Harvester.

Fetching with retry and challenge detection, offset pagination, page
parsing, and the reconcilers that turn scraped pages into stored rows,
cached snapshots and push notifications.
"""
