"""Record store backends.

Finished records live in a git-hosted repository and are addressed by path.
Writes are create-or-update with optimistic concurrency: an update must carry
the revision token (blob sha) of the object it replaces.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

import httpx

from medcapture.config import Settings
from medcapture.errors import ConfigurationError, RecordStoreError
from medcapture.models.record import RevisionInfo

logger = logging.getLogger(__name__)

GITHUB_HEADERS = {
    "Accept": "application/vnd.github.v3+json",
    "User-Agent": "medcapture",
}


@dataclass
class StoredObject:
    path: str
    content: str
    revision: str


@dataclass
class WriteReceipt:
    path: str
    revision: str
    commit_id: str | None = None
    html_url: str | None = None


class RecordStore:
    name: str

    async def get(self, path: str) -> StoredObject | None:  # pragma: no cover - interface
        raise NotImplementedError

    async def put(
        self,
        path: str,
        content: str,
        message: str,
        revision: str | None = None,
    ) -> WriteReceipt:  # pragma: no cover - interface
        raise NotImplementedError

    async def list_directory(self, path: str) -> list[str]:  # pragma: no cover - interface
        raise NotImplementedError

    async def latest_revision(self) -> RevisionInfo | None:  # pragma: no cover - interface
        raise NotImplementedError

    async def close(self) -> None:
        return


class GitHubRecordStore(RecordStore):
    """Record store over the GitHub repository contents API."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        branch: str = "main",
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token:
            raise ConfigurationError("GITHUB_TOKEN is required for the GitHub record store")
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.name = f"{owner}/{repo}"
        self._client = httpx.AsyncClient(
            base_url=api_url,
            headers={**GITHUB_HEADERS, "Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self.owner}/{self.repo}/contents/{path.strip('/')}"

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise RecordStoreError(f"GitHub API request failed: {exc}") from exc

    async def get(self, path: str) -> StoredObject | None:
        resp = await self._send("GET", self._contents_url(path), params={"ref": self.branch})
        if resp.status_code == 404:
            return None
        if resp.is_error:
            raise RecordStoreError(
                f"GitHub API error reading {path}: {resp.status_code} - {resp.text}",
                status_code=resp.status_code,
            )
        data = resp.json()
        raw = data.get("content", "")
        content = base64.b64decode(raw).decode("utf-8") if raw else ""
        return StoredObject(path=path, content=content, revision=data.get("sha", ""))

    async def put(
        self,
        path: str,
        content: str,
        message: str,
        revision: str | None = None,
    ) -> WriteReceipt:
        body = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if revision:
            body["sha"] = revision

        resp = await self._send("PUT", self._contents_url(path), json=body)
        if resp.is_error:
            raise RecordStoreError(
                f"GitHub API error: {resp.status_code} - {resp.text}",
                status_code=resp.status_code,
            )
        data = resp.json()
        return WriteReceipt(
            path=path,
            revision=data.get("content", {}).get("sha", ""),
            commit_id=data.get("commit", {}).get("sha"),
            html_url=data.get("content", {}).get("html_url"),
        )

    async def list_directory(self, path: str) -> list[str]:
        resp = await self._send("GET", self._contents_url(path), params={"ref": self.branch})
        if resp.status_code == 404:
            return []
        if resp.is_error:
            raise RecordStoreError(
                f"GitHub API error listing {path}: {resp.status_code}",
                status_code=resp.status_code,
            )
        entries = resp.json()
        if not isinstance(entries, list):
            return []
        return [e["path"] for e in entries if e.get("type") == "file" and "path" in e]

    async def latest_revision(self) -> RevisionInfo | None:
        resp = await self._send(
            "GET",
            f"/repos/{self.owner}/{self.repo}/commits",
            params={"per_page": "1", "sha": self.branch},
        )
        if resp.is_error:
            raise RecordStoreError(
                f"GitHub API error reading commits: {resp.status_code}",
                status_code=resp.status_code,
            )
        commits = resp.json()
        if not commits:
            return None
        latest = commits[0]
        commit = latest.get("commit", {})
        author = commit.get("author", {})
        return RevisionInfo(
            revision_id=latest.get("sha", ""),
            message=commit.get("message", ""),
            author=author.get("name", ""),
            timestamp=author.get("date", ""),
        )

    async def close(self) -> None:
        await self._client.aclose()


@dataclass
class _Revision:
    revision_id: str
    message: str
    timestamp: str


@dataclass
class InMemoryRecordStore(RecordStore):
    """Process-local store with the same concurrency contract, for local runs and tests."""

    name: str = "memory"
    objects: dict[str, StoredObject] = field(default_factory=dict)
    history: list[_Revision] = field(default_factory=list)

    @staticmethod
    def _hash(content: str) -> str:
        return hashlib.sha1(content.encode("utf-8")).hexdigest()

    async def get(self, path: str) -> StoredObject | None:
        return self.objects.get(path.strip("/"))

    async def put(
        self,
        path: str,
        content: str,
        message: str,
        revision: str | None = None,
    ) -> WriteReceipt:
        key = path.strip("/")
        existing = self.objects.get(key)
        if existing is not None and revision != existing.revision:
            raise RecordStoreError(f"{key} does not match {revision}", status_code=409)
        if existing is None and revision:
            raise RecordStoreError(f"{key} does not exist", status_code=404)

        stored = StoredObject(path=key, content=content, revision=self._hash(content))
        self.objects[key] = stored
        commit_id = self._hash(f"{len(self.history)}:{key}:{stored.revision}")
        self.history.append(_Revision(
            revision_id=commit_id,
            message=message,
            timestamp=datetime.now(UTC).isoformat(),
        ))
        return WriteReceipt(path=key, revision=stored.revision, commit_id=commit_id)

    async def list_directory(self, path: str) -> list[str]:
        prefix = path.strip("/") + "/"
        return sorted(
            key for key in self.objects
            if key.startswith(prefix) and "/" not in key[len(prefix):]
        )

    async def latest_revision(self) -> RevisionInfo | None:
        if not self.history:
            return None
        latest = self.history[-1]
        return RevisionInfo(
            revision_id=latest.revision_id,
            message=latest.message,
            author=self.name,
            timestamp=latest.timestamp,
        )


def build_record_store(settings: Settings) -> RecordStore:
    backend = settings.store_backend
    if backend == "github":
        if not settings.records_repo_owner:
            raise ConfigurationError("RECORDS_REPO_OWNER is required for the GitHub record store")
        return GitHubRecordStore(
            token=settings.github_token,
            owner=settings.records_repo_owner,
            repo=settings.records_repo_name,
            branch=settings.records_branch,
            api_url=settings.github_api_url,
            timeout=settings.record_store_timeout,
        )
    if backend == "memory":
        logger.warning("Using in-memory record store; records are not persisted")
        return InMemoryRecordStore()
    raise ConfigurationError(f"Unknown RECORD_STORE backend: {backend}")
