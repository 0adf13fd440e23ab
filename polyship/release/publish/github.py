# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
GitHub release publishing.

Publishing is a thin layer over the manifest: it creates a release for the
tag and uploads exactly the files the manifest names (entries and signature
files) plus manifest.json and provenance.json. Nothing else in the output
directory is uploaded, so stale files from earlier runs never leak into a
release.

There are no retries. Any non-2xx response raises PublishError and leaves
whatever was already created on GitHub in place.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import httpx

from polyship import __version__
from polyship.logging.logger import get_logger
from polyship.release.errors import PublishError
from polyship.release.manifests.manifest import Manifest
from polyship.release.packaging.naming import MANIFEST_FILE, PROVENANCE_FILE

_logger: logging.Logger = get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"
TOKEN_VARIABLES = ("GITHUB_TOKEN", "GH_TOKEN")
_UPLOAD_TEMPLATE_SUFFIX = "{?name,label}"


@dataclass(frozen=True)
class ReleaseInput:
    manifest: Manifest
    assets: tuple[Path, ...]
    changelog: str
    tag: str
    draft: bool = True
    prerelease: bool = False

    @property
    def name(self) -> str:
        return self.tag


@dataclass(frozen=True)
class PublishedRelease:
    release_id: int
    html_url: str
    uploaded: tuple[str, ...]


def github_token(env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """First non-empty token from GITHUB_TOKEN, then GH_TOKEN."""
    environ = os.environ if env is None else env
    for variable in TOKEN_VARIABLES:
        value = environ.get(variable)
        if value:
            return value
    return None


def release_assets(manifest: Manifest, output_dir: Path) -> tuple[Path, ...]:
    """
    Files to upload, in manifest order, then manifest.json and provenance.json.

    provenance.json is informational and skipped when absent.
    """
    names = [e.path for e in manifest.entries] + [s.path for s in manifest.signatures]
    names.append(MANIFEST_FILE)
    if (output_dir / PROVENANCE_FILE).is_file():
        names.append(PROVENANCE_FILE)

    seen: set[str] = set()
    assets: list[Path] = []
    for name in names:
        if name not in seen:
            seen.add(name)
            assets.append(output_dir / name)
    return tuple(assets)


def _content_type(path: Path) -> str:
    if path.name.endswith(".json"):
        return "application/json"
    if path.name.endswith(".gz"):
        return "application/gzip"
    if path.name.endswith(".zip"):
        return "application/zip"
    return "application/octet-stream"


class GitHubPublisher:
    """
    Creates one GitHub release and uploads its assets.

    Args:
        owner: Repository owner.
        repo: Repository name.
        token: API token with contents:write.
        api_url: Base API URL, for GitHub Enterprise.
        client: Optional pre-configured httpx.Client (tests pass a MockTransport).
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        api_url: str = DEFAULT_API_URL,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not token:
            raise PublishError("no GitHub token: set GITHUB_TOKEN or GH_TOKEN")
        self.owner = owner
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self._client = client or httpx.Client(timeout=60.0)
        self._headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "User-Agent": f"polyship/{__version__}",
        }

    def _check(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        _logger.error(
            "GitHub request failed",
            extra={"action": action, "status": response.status_code, "body": response.text[:500]},
        )
        raise PublishError(f"{action} failed: HTTP {response.status_code} {response.text[:200]}")

    def create_release(self, release: ReleaseInput) -> dict:
        url = f"{self.api_url}/repos/{self.owner}/{self.repo}/releases"
        payload = {
            "tag_name": release.tag,
            "name": release.name,
            "body": release.changelog,
            "draft": release.draft,
            "prerelease": release.prerelease,
        }
        try:
            response = self._client.post(url, json=payload, headers=self._headers)
        except httpx.HTTPError as err:
            raise PublishError(f"creating release {release.tag} failed: {err}") from err
        self._check(response, f"creating release {release.tag}")

        data = response.json()
        if not isinstance(data, dict) or "upload_url" not in data:
            raise PublishError("GitHub response has no upload_url")
        return data

    def upload_asset(self, upload_url: str, path: Path) -> None:
        base = upload_url.replace(_UPLOAD_TEMPLATE_SUFFIX, "")
        headers = dict(self._headers)
        headers["Content-Type"] = _content_type(path)
        try:
            response = self._client.post(
                base,
                params={"name": path.name},
                content=path.read_bytes(),
                headers=headers,
            )
        except httpx.HTTPError as err:
            raise PublishError(f"uploading {path.name} failed: {err}") from err
        self._check(response, f"uploading {path.name}")
        _logger.info("Asset uploaded", extra={"asset": path.name})

    def publish(self, release: ReleaseInput) -> PublishedRelease:
        """
        Create the release and upload every asset in order.

        Raises:
            PublishError: Missing asset, transport error, or a non-2xx response.
        """
        missing = [str(p) for p in release.assets if not p.is_file()]
        if missing:
            raise PublishError(f"release assets are missing: {', '.join(missing)}")

        data = self.create_release(release)
        _logger.info(
            "GitHub release created",
            extra={"tag": release.tag, "draft": release.draft, "release_id": data.get("id")},
        )

        uploaded: list[str] = []
        for path in release.assets:
            self.upload_asset(str(data["upload_url"]), path)
            uploaded.append(path.name)

        return PublishedRelease(
            release_id=int(data.get("id") or 0),
            html_url=str(data.get("html_url") or ""),
            uploaded=tuple(uploaded),
        )

    def close(self) -> None:
        self._client.close()
