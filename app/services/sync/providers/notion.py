"""
Notion Connector
Fetches a page and its block children and renders them to markdown-ish text
"""
import logging
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.models.records import ConnectorType
from app.services.sync.providers.base import ConnectorFetcher, FetchedFile

logger = logging.getLogger(__name__)

NOTION_API = "https://api.notion.com/v1"
MAX_BLOCK_PAGES = 20


def rich_text_to_str(rich_text: Optional[List[Dict[str, Any]]]) -> str:
    return "".join(part.get("plain_text", "") for part in rich_text or [])


def render_block(block: Dict[str, Any]) -> str:
    block_type = block.get("type")
    body = block.get(block_type) or {}
    text = rich_text_to_str(body.get("rich_text"))

    if block_type == "paragraph":
        return text + "\n\n"
    elif block_type == "heading_1":
        return f"# {text}\n\n"
    elif block_type == "heading_2":
        return f"## {text}\n\n"
    elif block_type == "heading_3":
        return f"### {text}\n\n"
    elif block_type == "bulleted_list_item":
        return f"- {text}\n"
    elif block_type == "numbered_list_item":
        return f"1. {text}\n"
    elif block_type == "to_do":
        checked = "[x]" if body.get("checked") else "[ ]"
        return f"{checked} {text}\n"
    elif block_type == "toggle":
        return text + "\n"
    elif block_type == "quote":
        return f"> {text}\n\n"
    elif block_type == "code":
        return f"```\n{text}\n```\n\n"
    elif block_type == "callout":
        return text + "\n\n"
    return ""


def render_blocks(blocks: List[Dict[str, Any]]) -> str:
    return "".join(render_block(block) for block in blocks).strip()


def extract_page_title(page: Dict[str, Any]) -> Optional[str]:
    """Title lives in whichever property has type 'title' (usually 'title' or 'Name')."""
    for prop in (page.get("properties") or {}).values():
        if prop.get("type") == "title":
            title = rich_text_to_str(prop.get("title"))
            if title:
                return title
    return None


class NotionFetcher(ConnectorFetcher):
    """external_ref is the Notion page id."""

    connector_type = ConnectorType.NOTION

    def _headers(self, access_token: Optional[str]) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Notion-Version": settings.notion_api_version,
        }

    async def fetch(self, external_ref: str, access_token: Optional[str]) -> FetchedFile:
        headers = self._headers(access_token)

        page_response = await self.request("GET", f"{NOTION_API}/pages/{external_ref}", "page", headers=headers)
        page = page_response.json()
        title = extract_page_title(page) or f"Notion page {external_ref}"

        blocks: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        for _ in range(MAX_BLOCK_PAGES):
            params = {"page_size": 100}
            if cursor:
                params["start_cursor"] = cursor
            blocks_response = await self.request(
                "GET", f"{NOTION_API}/blocks/{external_ref}/children", "page blocks",
                params=params, headers=headers
            )
            payload = blocks_response.json()
            blocks.extend(payload.get("results", []))
            if not payload.get("has_more"):
                break
            cursor = payload.get("next_cursor")

        text = render_blocks(blocks)
        logger.info(f"   📝 Notion page '{title}': {len(blocks)} blocks, {len(text)} chars")

        return FetchedFile(
            filename=f"{title}.md",
            title=title,
            data=text.encode("utf-8"),
            mime_type="text/markdown",
            metadata={
                "url": page.get("url"),
                "last_edited_time": page.get("last_edited_time"),
            },
        )
