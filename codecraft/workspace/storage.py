"""Workspace file storage over a local directory or a remote blob service."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Protocol

import httpx

from codecraft.config import STORAGE_BLOB, Settings
from codecraft.errors import (
    BackendError,
    InvalidTargetError,
    NotFoundError,
    PathEscapeError,
)
from codecraft.workspace.paths import clean_relative_path, relative_to_workspace, resolve_workspace_path

logger = logging.getLogger("codecraft.workspace.storage")

ENTRY_FILE = "file"
ENTRY_DIRECTORY = "directory"
ALLOWED_ENTRY_TYPES = {ENTRY_FILE, ENTRY_DIRECTORY}


class WorkspaceStore(Protocol):
    """CRUD contract shared by storage backends. Paths are workspace-relative."""

    async def list_dir(self, path: str) -> list[dict[str, Any]]:
        """Return directory entries, directories first."""

    async def read_file(self, path: str) -> str:
        """Return file text."""

    async def write_file(self, path: str, content: str) -> None:
        """Create or replace a file, creating parents."""

    async def create(self, parent: str, name: str, entry_type: str) -> None:
        """Create an empty file or directory inside an existing parent."""

    async def delete(self, path: str) -> None:
        """Remove a file or a whole directory subtree."""

    async def is_dir(self, path: str) -> bool:
        """Return True when `path` names an existing directory."""


def sort_entries(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(entries, key=lambda row: (row["type"] != ENTRY_DIRECTORY, row["name"].lower(), row["name"]))


def _iso_mtime(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _is_real_dir(path: Path) -> bool:
    return path.is_dir() and not path.is_symlink()


class LocalWorkspaceStore:
    """Workspace backed by a directory on local disk."""

    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        return resolve_workspace_path(self.root, path)

    async def list_dir(self, path: str) -> list[dict[str, Any]]:
        target = self._resolve(path)
        return await asyncio.to_thread(self._list_dir_sync, target)

    def _list_dir_sync(self, target: Path) -> list[dict[str, Any]]:
        if not target.exists():
            raise NotFoundError("Directory not found")
        if not target.is_dir():
            raise InvalidTargetError("Path is not a directory")
        entries: list[dict[str, Any]] = []
        try:
            with os.scandir(target) as iterator:
                for item in iterator:
                    entries.append(self._entry_info(Path(item.path)))
        except OSError as exc:
            raise BackendError(str(exc)) from exc
        return sort_entries(entries)

    def _entry_info(self, entry_path: Path) -> dict[str, Any]:
        try:
            stats = entry_path.stat()
        except OSError:
            # Dangling symlink: report the link itself.
            stats = entry_path.lstat()
        is_directory = entry_path.is_dir()
        info: dict[str, Any] = {
            "name": entry_path.name,
            "path": relative_to_workspace(self.root, entry_path),
            "type": ENTRY_DIRECTORY if is_directory else ENTRY_FILE,
            "size": stats.st_size,
            "modified": _iso_mtime(stats.st_mtime),
        }
        if is_directory:
            try:
                info["children"] = any(True for _ in entry_path.iterdir())
            except OSError:
                info["children"] = False
        return info

    async def read_file(self, path: str) -> str:
        target = self._resolve(path)
        return await asyncio.to_thread(self._read_sync, target)

    def _read_sync(self, target: Path) -> str:
        if not target.exists():
            raise NotFoundError("File not found")
        if target.is_dir():
            raise InvalidTargetError("Path is a directory")
        try:
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise BackendError(str(exc)) from exc

    async def write_file(self, path: str, content: str) -> None:
        target = self._resolve(path)
        if target == self.root:
            raise InvalidTargetError("Path is a directory")
        await asyncio.to_thread(self._write_sync, target, content)

    def _write_sync(self, target: Path, content: str) -> None:
        if target.is_dir():
            raise InvalidTargetError("Path is a directory")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise BackendError(str(exc)) from exc

    async def create(self, parent: str, name: str, entry_type: str) -> None:
        if entry_type not in ALLOWED_ENTRY_TYPES:
            raise InvalidTargetError(f"Unsupported entry type: {entry_type}")
        if not name or not name.strip():
            raise InvalidTargetError("Name is required")
        parent_dir = self._resolve(parent)
        target = self._resolve(f"{clean_relative_path(parent)}/{name}")
        if target == self.root:
            raise InvalidTargetError("Name is required")
        await asyncio.to_thread(self._create_sync, parent_dir, target, entry_type)

    def _create_sync(self, parent_dir: Path, target: Path, entry_type: str) -> None:
        if not parent_dir.is_dir():
            raise NotFoundError("Parent directory not found")
        if target.exists():
            raise InvalidTargetError("Path already exists")
        try:
            if entry_type == ENTRY_DIRECTORY:
                target.mkdir()
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text("", encoding="utf-8")
        except OSError as exc:
            raise BackendError(str(exc)) from exc

    async def delete(self, path: str) -> None:
        target = resolve_workspace_path(self.root, path, follow_symlinks=False)
        if target == self.root:
            raise PathEscapeError("Access denied: cannot delete workspace root")
        await asyncio.to_thread(self._delete_sync, target)

    def _delete_sync(self, target: Path) -> None:
        if not target.exists() and not target.is_symlink():
            raise NotFoundError("File not found")
        try:
            if _is_real_dir(target):
                shutil.rmtree(target)
            else:
                target.unlink()
        except OSError as exc:
            raise BackendError(str(exc)) from exc

    async def is_dir(self, path: str) -> bool:
        """True for a real directory; a symlink to one is not a directory here."""
        target = resolve_workspace_path(self.root, path, follow_symlinks=False)
        return await asyncio.to_thread(_is_real_dir, target)


class BlobWorkspaceStore:
    """Workspace kept in a Vercel Blob store, keyed by pathname."""

    API_VERSION = "7"

    def __init__(
        self,
        token: str,
        api_url: str,
        public_url: str,
        *,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.public_url = public_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds), transport=self._transport)

    def _headers(self) -> dict[str, str]:
        if not self.token:
            raise BackendError("WORKSPACE_READ_WRITE_TOKEN is not configured")
        return {"authorization": f"Bearer {self.token}", "x-api-version": self.API_VERSION}

    @staticmethod
    def _key(path: str) -> str:
        cleaned = clean_relative_path(path)
        parts = [part for part in PurePosixPath(cleaned).parts if part not in {"", "."}]
        if ".." in parts:
            raise PathEscapeError()
        return "/".join(parts)

    async def _list_blobs(self, prefix: str) -> list[dict[str, Any]]:
        blobs: list[dict[str, Any]] = []
        cursor: str | None = None
        async with self._client() as client:
            while True:
                params: dict[str, str] = {"prefix": prefix}
                if cursor:
                    params["cursor"] = cursor
                try:
                    response = await client.get(self.api_url, params=params, headers=self._headers())
                except httpx.HTTPError as exc:
                    raise BackendError(f"Blob list failed: {exc}") from exc
                if response.status_code != 200:
                    raise BackendError(f"Blob list failed: HTTP {response.status_code}")
                payload = response.json()
                if not isinstance(payload, dict):
                    raise BackendError("Blob list payload invalid")
                for blob in payload.get("blobs") or []:
                    if isinstance(blob, dict) and isinstance(blob.get("pathname"), str):
                        blobs.append(blob)
                cursor = payload.get("cursor")
                if not payload.get("hasMore") or not cursor:
                    return blobs

    async def list_dir(self, path: str) -> list[dict[str, Any]]:
        key = self._key(path)
        prefix = f"{key}/" if key else ""
        blobs = await self._list_blobs(prefix)
        if key and not blobs:
            raise NotFoundError("Directory not found")
        entries: dict[str, dict[str, Any]] = {}
        for blob in blobs:
            remainder = blob["pathname"][len(prefix):]
            if not remainder:
                continue
            head, _, rest = remainder.partition("/")
            entry_path = f"{prefix}{head}"
            if rest:
                directory = entries.setdefault(
                    head,
                    {
                        "name": head,
                        "path": entry_path,
                        "type": ENTRY_DIRECTORY,
                        "size": 0,
                        "modified": blob.get("uploadedAt"),
                        "children": False,
                    },
                )
                if rest.rstrip("/") and PurePosixPath(rest).name != ".keep":
                    directory["children"] = True
                continue
            if head == ".keep":
                continue
            entries[head] = {
                "name": head,
                "path": entry_path,
                "type": ENTRY_FILE,
                "size": int(blob.get("size") or 0),
                "modified": blob.get("uploadedAt"),
                "url": blob.get("url"),
            }
        return sort_entries(list(entries.values()))

    async def read_file(self, path: str) -> str:
        key = self._key(path)
        if not key:
            raise InvalidTargetError("Path is a directory")
        async with self._client() as client:
            try:
                response = await client.get(f"{self.public_url}/{key}")
            except httpx.HTTPError as exc:
                raise BackendError(f"Blob read failed: {exc}") from exc
        if response.status_code == 404:
            raise NotFoundError("File not found")
        if response.status_code != 200:
            raise BackendError(f"Blob read failed: HTTP {response.status_code}")
        return response.text

    async def write_file(self, path: str, content: str) -> None:
        key = self._key(path)
        if not key:
            raise InvalidTargetError("Path is a directory")
        await self._put(key, content)

    async def _put(self, key: str, content: str) -> None:
        headers = self._headers()
        headers.update(
            {
                "x-add-random-suffix": "0",
                "x-allow-overwrite": "1",
                "x-content-type": "text/plain; charset=utf-8",
            }
        )
        async with self._client() as client:
            try:
                response = await client.put(
                    f"{self.api_url}/{key}",
                    content=content.encode("utf-8"),
                    headers=headers,
                )
            except httpx.HTTPError as exc:
                raise BackendError(f"Blob write failed: {exc}") from exc
        if response.status_code not in {200, 201}:
            raise BackendError(f"Blob write failed: HTTP {response.status_code}")

    async def create(self, parent: str, name: str, entry_type: str) -> None:
        if entry_type not in ALLOWED_ENTRY_TYPES:
            raise InvalidTargetError(f"Unsupported entry type: {entry_type}")
        if not name or not name.strip():
            raise InvalidTargetError("Name is required")
        parent_key = self._key(parent)
        key = self._key(f"{parent_key}/{name}")
        if parent_key and not await self._list_blobs(f"{parent_key}/"):
            raise NotFoundError("Parent directory not found")
        existing = await self._list_blobs(key)
        if any(blob["pathname"] == key or blob["pathname"].startswith(f"{key}/") for blob in existing):
            raise InvalidTargetError("Path already exists")
        # Blob stores have no directories; a marker object keeps an empty one listable.
        if entry_type == ENTRY_DIRECTORY:
            await self._put(f"{key}/.keep", "")
        else:
            await self._put(key, "")

    async def delete(self, path: str) -> None:
        key = self._key(path)
        if not key:
            raise PathEscapeError("Access denied: cannot delete workspace root")
        blobs = await self._list_blobs(key)
        urls = [
            blob.get("url")
            for blob in blobs
            if blob["pathname"] == key or blob["pathname"].startswith(f"{key}/")
        ]
        urls = [url for url in urls if isinstance(url, str) and url]
        if not urls:
            raise NotFoundError("File not found")
        async with self._client() as client:
            try:
                response = await client.post(
                    f"{self.api_url}/delete",
                    json={"urls": urls},
                    headers=self._headers(),
                )
            except httpx.HTTPError as exc:
                raise BackendError(f"Blob delete failed: {exc}") from exc
        if response.status_code != 200:
            raise BackendError(f"Blob delete failed: HTTP {response.status_code}")
        logger.info("Deleted %d blob(s) under %s", len(urls), key)

    async def is_dir(self, path: str) -> bool:
        key = self._key(path)
        if not key:
            return True
        return bool(await self._list_blobs(f"{key}/"))


def build_store(settings: Settings) -> WorkspaceStore:
    """Pick the storage backend named in settings."""
    if settings.storage_backend == STORAGE_BLOB:
        return BlobWorkspaceStore(
            token=settings.blob_token,
            api_url=settings.blob_api_url,
            public_url=settings.blob_public_url,
        )
    return LocalWorkspaceStore(settings.workspace_dir)
