"""site_fetch.parser: HTML rendering and sitemap parsing."""
from site_fetch.parser.html_parser import RenderedPage, render
from site_fetch.parser.sitemap_parser import SitemapDocument, parse_sitemap

__all__ = ["RenderedPage", "SitemapDocument", "parse_sitemap", "render"]
