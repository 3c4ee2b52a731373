"""HTML main-content extraction."""

import re
from typing import Any, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Comment, Tag

NON_CONTENT_TAGS = ["script", "style", "noscript", "meta", "link", "template", "svg", "iframe"]
CHROME_TAGS = ["header", "footer", "nav", "aside"]
MAIN_SELECTORS = (
    "main",
    '[role="main"]',
    "#main",
    ".main",
    "#content",
    ".content",
    ".post-content",
    "article",
)
HIDDEN_STYLE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden")


class ContentExtractor:
    """Extracts readable main-content text, metadata and links from HTML.

    Text keeps one line per block-level element so that line-oriented
    heuristics downstream see list items and headings separately.
    """

    def extract(self, html: str, base_url: str) -> dict[str, Any]:
        """Extract text, title, description and same-site links."""
        soup = BeautifulSoup(html, "html.parser")

        title = self._extract_title(soup)
        description = self._extract_description(soup)
        links = self._extract_links(soup, base_url)

        self._clean_soup(soup)
        text = self._extract_main_content(soup)

        return {
            "text": text,
            "title": title,
            "description": description,
            "links": links,
            "word_count": len(text.split()),
        }

    def _extract_title(self, soup: BeautifulSoup) -> Optional[str]:
        if soup.title and soup.title.string:
            return soup.title.string.strip() or None
        og_title = soup.find("meta", attrs={"property": "og:title"})
        if og_title and og_title.get("content"):
            return og_title["content"].strip() or None
        return None

    def _extract_description(self, soup: BeautifulSoup) -> Optional[str]:
        for attrs in ({"name": "description"}, {"property": "og:description"}):
            tag = soup.find("meta", attrs=attrs)
            if tag and tag.get("content"):
                return tag["content"].strip() or None
        return None

    def _extract_links(self, soup: BeautifulSoup, base_url: str) -> list[str]:
        base_host = urlparse(base_url).netloc
        links = []
        seen = set()

        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
                continue
            absolute = urljoin(base_url, href).split("#", 1)[0]
            if urlparse(absolute).netloc != base_host:
                continue
            if absolute not in seen:
                seen.add(absolute)
                links.append(absolute)

        return links

    def _clean_soup(self, soup: BeautifulSoup) -> None:
        for tag in soup.find_all(NON_CONTENT_TAGS):
            tag.decompose()

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        for tag in soup.find_all(attrs={"style": HIDDEN_STYLE}):
            tag.decompose()

        for tag in soup.find_all(attrs={"aria-hidden": "true"}):
            tag.decompose()

    def _extract_main_content(self, soup: BeautifulSoup) -> str:
        for selector in MAIN_SELECTORS:
            element = soup.select_one(selector)
            if element:
                return self._get_clean_text(element)

        body = soup.find("body")
        if body:
            for tag in body.find_all(CHROME_TAGS):
                tag.decompose()
            return self._get_clean_text(body)

        return self._get_clean_text(soup)

    def _get_clean_text(self, element) -> str:
        if not isinstance(element, Tag):
            return str(element).strip()

        text = element.get_text(separator="\n")
        lines = (re.sub(r"[ \t\xa0]+", " ", line).strip() for line in text.splitlines())
        return "\n".join(line for line in lines if line)
