from site_fetch.crawler.crawler import WebCrawler, crawl
from site_fetch.crawler.models import CrawlBudget, CrawlReport, FetchOutcome, PageResult
from site_fetch.crawler.robots import RobotsPolicy

__all__ = ["CrawlBudget", "CrawlReport", "FetchOutcome", "PageResult", "RobotsPolicy", "WebCrawler", "crawl"]
