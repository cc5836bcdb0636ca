"""Distributed locking and interval scheduling of crawl jobs."""
