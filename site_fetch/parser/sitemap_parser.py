# File: site_fetch/parser/sitemap_parser.py
"""site_fetch.parser.sitemap_parser: sitemap.xml and sitemap-index parsing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from lxml import etree


@dataclass(slots=True)
class SitemapDocument:
    """Page URLs of a ``<urlset>`` and child sitemaps of a ``<sitemapindex>``."""

    urls: List[str] = field(default_factory=list)
    sitemaps: List[str] = field(default_factory=list)


def parse_sitemap(xml_content: str | bytes) -> SitemapDocument:
    """Parse sitemap XML and return the URLs found in its ``<loc>`` tags.

    Args:
        xml_content: sitemap.xml body, text or bytes.

    Returns:
        SitemapDocument; ``<loc>`` entries under ``<sitemap>`` land in
        ``sitemaps``, all others in ``urls``. Unparsable input yields an
        empty document.

    Example:
    ```python
    from site_fetch.parser.sitemap_parser import parse_sitemap

    doc = parse_sitemap(open("sitemap.xml", "rb").read())
    print(doc.urls)
    ```
    """
    if isinstance(xml_content, str):
        xml_content = xml_content.encode("utf-8")
    if not xml_content.strip():
        return SitemapDocument()

    parser = etree.XMLParser(ns_clean=True, recover=True, resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(xml_content, parser=parser)
    except etree.XMLSyntaxError:
        return SitemapDocument()
    doc = SitemapDocument()
    if root is None:
        return doc

    for loc in root.iterfind(".//{*}loc"):
        if not loc.text or not loc.text.strip():
            continue
        parent = loc.getparent()
        tag = etree.QName(parent).localname if parent is not None else ""
        if tag == "sitemap":
            doc.sitemaps.append(loc.text.strip())
        else:
            doc.urls.append(loc.text.strip())
    return doc
