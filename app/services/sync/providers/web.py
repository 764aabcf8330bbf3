"""
Web Crawler Connector
Fetches a single URL and reduces HTML to readable text
"""
import logging
import re
from typing import Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from app.core.errors import ValidationFailure
from app.models.records import ConnectorType
from app.services.sync.providers.base import ConnectorFetcher, FetchedFile

logger = logging.getLogger(__name__)

USER_AGENT = "KnowledgeSyncBot/1.0"
BOILERPLATE_TAGS = ["script", "style", "nav", "footer", "header", "aside", "noscript", "iframe"]


def _normalise(text: str) -> str:
    text = re.sub(r"[^\S\n]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def html_to_text(html: str) -> Tuple[str, str]:
    """Returns (title, text). Title is prepended to the text when present."""
    soup = BeautifulSoup(html, "html.parser")

    title = ""
    if soup.title and soup.title.string:
        title = soup.title.string.strip()
    elif soup.find("h1"):
        title = soup.find("h1").get_text(strip=True)

    for tag in soup(BOILERPLATE_TAGS):
        tag.decompose()

    text = _normalise(soup.get_text(separator="\n", strip=True))
    if title and not text.startswith(title):
        text = f"{title}\n\n{text}"
    return title, text


def validate_url(url: str) -> str:
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationFailure(f"Invalid URL '{url}' (http/https only)")
    return url.strip()


class WebFetcher(ConnectorFetcher):
    """external_ref is the URL. No credentials."""

    connector_type = ConnectorType.WEB_CRAWLER

    async def fetch(self, external_ref: str, access_token: Optional[str] = None) -> FetchedFile:
        url = validate_url(external_ref)
        response = await self.request(
            "GET", url, "page",
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True
        )

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        fallback_title = urlparse(url).path.strip("/") or urlparse(url).netloc

        if content_type in ("text/html", "application/xhtml+xml") or not content_type:
            title, text = html_to_text(response.text)
            data = text.encode("utf-8")
            mime_type = "text/plain"
        else:
            title = ""
            data = response.content
            mime_type = content_type

        title = title or fallback_title
        logger.info(f"   🌐 {url}: {len(data)} bytes ({mime_type})")

        return FetchedFile(
            filename=title,
            title=title,
            data=data,
            mime_type=mime_type,
            metadata={"url": url, "final_url": str(response.url)},
        )
