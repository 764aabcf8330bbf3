"""
Data Source Providers
Connector fetchers for external sources (Drive, Notion, GitHub, web)
"""
from typing import Dict

import httpx

from app.models.records import ConnectorType
from app.services.sync.providers.base import ConnectorFetcher, FetchedFile
from app.services.sync.providers.github import GitHubFetcher
from app.services.sync.providers.google_drive import GoogleDriveFetcher
from app.services.sync.providers.notion import NotionFetcher
from app.services.sync.providers.web import WebFetcher


def build_fetchers(http_client: httpx.AsyncClient) -> Dict[ConnectorType, ConnectorFetcher]:
    """One fetcher per syncable connector. Direct uploads have none."""
    fetchers: Dict[ConnectorType, ConnectorFetcher] = {}
    for connector_type in ConnectorType:
        if connector_type == ConnectorType.GOOGLE_DRIVE:
            fetchers[connector_type] = GoogleDriveFetcher(http_client)
        elif connector_type == ConnectorType.NOTION:
            fetchers[connector_type] = NotionFetcher(http_client)
        elif connector_type == ConnectorType.GITHUB:
            fetchers[connector_type] = GitHubFetcher(http_client)
        elif connector_type == ConnectorType.WEB_CRAWLER:
            fetchers[connector_type] = WebFetcher(http_client)
        elif connector_type == ConnectorType.DIRECT_UPLOAD:
            continue
        else:
            raise ValueError(f"Unknown connector type: {connector_type}")
    return fetchers


__all__ = [
    "ConnectorFetcher",
    "FetchedFile",
    "GitHubFetcher",
    "GoogleDriveFetcher",
    "NotionFetcher",
    "WebFetcher",
    "build_fetchers",
]
