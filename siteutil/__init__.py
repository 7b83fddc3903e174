"""Canonical URL, sitemap and deployment-state tooling for the 21.dev sites."""

__version__ = "0.1.0"
