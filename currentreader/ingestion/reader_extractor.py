"""
Reader Extractor
================

Fetches an article page and extracts its main readable content with
readability-lxml. The extracted HTML is sanitized before it leaves this module.
"""

import asyncio
from typing import Optional

import aiohttp
from bs4 import BeautifulSoup
from readability import Document

from ..config.settings import get_settings
from ..database.models import ReaderExtraction
from ..utils.exceptions import CurrentReaderError, ReaderExtractionError
from ..utils.logging import get_logger_for_component
from .content_cleaner import PARSER, READER_POLICY, sanitize, strip_all_markup
from .http import ConditionalFetcher, HTML_ACCEPT


def _meta_author(soup: BeautifulSoup) -> Optional[str]:
    meta = soup.find("meta", attrs={"name": "author"})
    if meta and meta.get("content", "").strip():
        return meta["content"].strip()
    return None


def _document_title(soup: BeautifulSoup) -> Optional[str]:
    if soup.title and soup.title.string and soup.title.string.strip():
        return soup.title.string.strip()
    return None


class ReaderExtractor:
    """Readable-content extraction for article pages."""

    def __init__(self, fetcher: ConditionalFetcher, fallback_text_length: Optional[int] = None):
        self.fetcher = fetcher
        self.fallback_text_length = (
            fallback_text_length or get_settings().reader.fallback_text_length
        )
        self.logger = get_logger_for_component("reader_extractor")

    def extract_from_html(self, html: str, url: str) -> ReaderExtraction:
        """Run readability over a page already in memory.

        Args:
            html: Page markup
            url: Page URL, used as the title of last resort

        Returns:
            ReaderExtraction with sanitized HTML, or a plain-text fallback

        Raises:
            ReaderExtractionError: Page could not be processed at all
        """
        try:
            soup = BeautifulSoup(html, PARSER)
            byline = _meta_author(soup)

            document = Document(html)
            summary_html = document.summary(html_partial=True)
            content_text = strip_all_markup(summary_html)

            if not content_text:
                self.logger.debug(f"Readability found no content on {url}, using fallback")
                return ReaderExtraction(
                    title=_document_title(soup) or url,
                    byline=byline,
                    content_text=strip_all_markup(html)[: self.fallback_text_length],
                )

            return ReaderExtraction(
                title=document.short_title() or _document_title(soup) or url,
                byline=byline,
                content_text=content_text,
                content_html=sanitize(summary_html, READER_POLICY) or None,
            )

        except Exception as e:
            raise ReaderExtractionError(
                f"Readable content extraction failed: {e}", url=url
            ) from e

    async def extract(self, url: str, session: aiohttp.ClientSession) -> ReaderExtraction:
        """Fetch ``url`` and extract its readable content.

        Raises:
            ReaderExtractionError: Fetch or extraction failed
        """
        try:
            html = await self.fetcher.fetch_document(url, session, accept=HTML_ACCEPT)
        except CurrentReaderError as e:
            raise ReaderExtractionError(
                f"Could not fetch article page: {e}", url=url
            ) from e

        # readability is CPU-bound; keep it off the event loop
        loop = asyncio.get_running_loop()
        extraction = await loop.run_in_executor(None, self.extract_from_html, html, url)

        self.logger.info(
            f"Extracted {len(extraction.content_text)} chars of reader content from {url}"
        )
        return extraction
