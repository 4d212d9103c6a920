"""Visible-text and metadata extraction from fetched documents."""

import re
from typing import Optional

from bs4 import BeautifulSoup, Comment

from .types import ExtractedContent

_WHITESPACE = re.compile(r"[ \t\r\f\v\u00a0]+")


class ContentExtractor:
    """Turns HTML, XML sitemaps and plain text into comparable visible text."""

    def __init__(self):
        self.ignore_tags = {"script", "style", "noscript", "template"}

    def extract(
        self, body: str, content_type: Optional[str] = None
    ) -> ExtractedContent:
        """Dispatch on the response content type."""
        kind = (content_type or "").split(";")[0].strip().lower()
        if kind in ("application/xml", "text/xml") or kind.endswith("+xml"):
            return self.extract_from_xml(body)
        if kind == "text/plain":
            return ExtractedContent(text=self.normalize_text(body))
        return self.extract_from_html(body)

    def extract_from_html(self, html: str) -> ExtractedContent:
        soup = self._get_soup(html)

        title = None
        if soup.title and soup.title.string:
            title = soup.title.string.strip()

        description = self._meta_content(soup, name="description") or self._meta_content(
            soup, property="og:description"
        )

        canonical_url = None
        canonical = soup.find("link", rel="canonical")
        if canonical and canonical.get("href"):
            canonical_url = canonical["href"].strip()

        self._clean_soup(soup)
        root = soup.body or soup
        text = self.normalize_text(root.get_text(separator="\n"))

        return ExtractedContent(
            text=text,
            title=title,
            description=description,
            canonical_url=canonical_url,
        )

    def extract_from_xml(self, xml: str) -> ExtractedContent:
        """Sitemaps and sitemap indexes: the text is the list of <loc> URLs."""
        soup = self._get_soup(xml)
        urls = [
            loc.get_text(strip=True) for loc in soup.find_all("loc") if loc.get_text(strip=True)
        ]
        if urls:
            return ExtractedContent(text="\n".join(urls), sitemap_urls=urls)
        return ExtractedContent(text=self.normalize_text(soup.get_text(separator="\n")))

    def normalize_text(self, text: str) -> str:
        """Collapse runs of spaces per line and drop blank lines."""
        lines = (_WHITESPACE.sub(" ", line).strip() for line in text.splitlines())
        return "\n".join(line for line in lines if line)

    def _get_soup(self, markup: str) -> BeautifulSoup:
        return BeautifulSoup(markup, "html.parser")

    def _clean_soup(self, soup: BeautifulSoup) -> None:
        for tag in soup.find_all(list(self.ignore_tags)):
            tag.decompose()

        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()

    def _meta_content(self, soup: BeautifulSoup, **attrs: str) -> Optional[str]:
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content"):
            return tag["content"].strip()
        return None
