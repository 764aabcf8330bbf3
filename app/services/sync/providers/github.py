"""
GitHub Connector
Fetches a single repository file through the contents API

External ref format: "owner/repo[@branch]:path"
    acme/api:README.md
    acme/api@develop:docs/setup.md
"""
import logging
import mimetypes
import posixpath
from dataclasses import dataclass
from typing import Optional

from app.core.errors import ValidationFailure
from app.models.records import ConnectorType
from app.services.sync.providers.base import ConnectorFetcher, FetchedFile

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"


@dataclass(frozen=True)
class GitHubRef:
    owner: str
    repo: str
    branch: Optional[str]
    path: str

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"


def parse_github_ref(external_ref: str) -> GitHubRef:
    repo_part, sep, path = external_ref.partition(":")
    path = path.strip().lstrip("/")
    if not sep or not path:
        raise ValidationFailure(f"Invalid GitHub ref '{external_ref}' (expected owner/repo[@branch]:path)")

    repo_part, _, branch = repo_part.partition("@")
    owner, slash, repo = repo_part.strip().partition("/")
    if not slash or not owner or not repo or "/" in repo:
        raise ValidationFailure(f"Invalid GitHub ref '{external_ref}' (expected owner/repo[@branch]:path)")

    return GitHubRef(owner=owner, repo=repo, branch=branch.strip() or None, path=path)


def guess_mime_type(path: str) -> str:
    if path.lower().endswith((".md", ".mdx")):
        return "text/markdown"
    guessed, _ = mimetypes.guess_type(path)
    return guessed or "text/plain"


class GitHubFetcher(ConnectorFetcher):

    connector_type = ConnectorType.GITHUB

    async def fetch(self, external_ref: str, access_token: Optional[str]) -> FetchedFile:
        ref = parse_github_ref(external_ref)
        params = {"ref": ref.branch} if ref.branch else None

        response = await self.request(
            "GET", f"{GITHUB_API}/repos/{ref.repository}/contents/{ref.path}", "file",
            params=params,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/vnd.github.raw",
            }
        )

        filename = posixpath.basename(ref.path)
        logger.info(f"   🐙 {ref.repository}:{ref.path} ({len(response.content)} bytes)")

        return FetchedFile(
            filename=filename,
            title=f"{ref.repo} - {ref.path}",
            data=response.content,
            mime_type=guess_mime_type(ref.path),
            metadata={
                "repository": ref.repository,
                "branch": ref.branch,
                "path": ref.path,
                "url": f"https://github.com/{ref.repository}/blob/{ref.branch or 'HEAD'}/{ref.path}",
            },
        )
