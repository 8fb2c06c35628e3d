"""Registry of OCA bundle repositories.

A repository is a named base URL that repository-relative bundle paths are
resolved against:

- github: a browsable tree URL (https://github.com/<owner>/<repo>/tree/<branch>)
  or its raw-document equivalent; paths resolve through
  normalize_bundle_reference()
- direct: any http(s) directory; ``<base>/<path>/OCABundle.json``

The configured default repository is always registered under DEFAULT_REPOSITORY_ID.
Credentials select another one with ``brandingMetadata.ocaRepositoryId``.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from app.core.config import (
    OCA_BUNDLE_FILENAME,
    OCA_DEFAULT_BRANCH,
    OCA_DEFAULT_REPOSITORY,
    OCA_REPOSITORY_TYPES,
)

from .exceptions import RepositoryError

log = logging.getLogger(__name__)

DEFAULT_REPOSITORY_ID = "default"


@dataclass(frozen=True)
class OcaRepository:
    id: str
    name: str
    base_url: str
    type: str

    def bundle_reference(self, path: str) -> str:
        """Absolute bundle reference for a path inside this repository."""
        path = path.strip().strip("/")
        base = self.base_url.rstrip("/")
        if self.type == "github":
            return f"{base}/{path}" if path else base
        if path.lower().endswith(".json"):
            return f"{base}/{path}"
        return f"{base}/{path}/{OCA_BUNDLE_FILENAME}" if path else f"{base}/{OCA_BUNDLE_FILENAME}"

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "baseUrl": self.base_url, "type": self.type}


def default_repository() -> OcaRepository:
    return OcaRepository(
        id=DEFAULT_REPOSITORY_ID,
        name=OCA_DEFAULT_REPOSITORY,
        base_url=f"https://github.com/{OCA_DEFAULT_REPOSITORY}/tree/{OCA_DEFAULT_BRANCH}",
        type="github",
    )


class RepositoryRegistry:
    """In-memory repository table; registering an existing id replaces it."""

    def __init__(self, repositories: Optional[List[OcaRepository]] = None):
        self._repositories: Dict[str, OcaRepository] = {}
        for repo in repositories if repositories is not None else [default_repository()]:
            self.add(repo)

    def add(self, repo: OcaRepository) -> OcaRepository:
        """Register repo.

        Raises:
            RepositoryError: Blank id/name, unknown type or non-http(s) base URL.
        """
        if not repo.id.strip() or not repo.name.strip():
            raise RepositoryError("Repository id and name are required")
        if repo.type not in OCA_REPOSITORY_TYPES:
            raise RepositoryError(
                f"Repository type must be one of {', '.join(OCA_REPOSITORY_TYPES)}"
            )
        parts = urlsplit(repo.base_url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise RepositoryError(f"Repository base URL must be http(s): {repo.base_url}")

        replaced = repo.id in self._repositories
        self._repositories[repo.id] = repo
        log.info(f"OCA repository {'replaced' if replaced else 'added'}: {repo.id} ({repo.base_url})")
        return repo

    def get(self, repo_id: str) -> Optional[OcaRepository]:
        return self._repositories.get(repo_id)

    def list(self) -> List[OcaRepository]:
        return list(self._repositories.values())

    def __len__(self) -> int:
        return len(self._repositories)

    def reference_for(self, reference: str, repo_id: Optional[str]) -> str:
        """Resolve a repository-relative reference; URLs pass through unchanged."""
        if not repo_id or "://" in reference:
            return reference
        repo = self.get(repo_id)
        if repo is None:
            log.warning(f"Unknown OCA repository {repo_id!r}, using default for {reference}")
            return reference
        return repo.bundle_reference(reference)
