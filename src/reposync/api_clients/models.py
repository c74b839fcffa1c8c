"""Narrow result types for remote API responses.

Each model pulls only the fields the sync engine needs out of a GitHub
payload and validates them at the client boundary, so nothing downstream
handles raw dictionaries.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import InvalidResponseError


class RemoteModel(BaseModel):
    """Base for response models; unknown payload fields are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    @classmethod
    def from_payload(cls, payload: Any) -> "RemoteModel":
        """Validate a decoded JSON payload, raising InvalidResponseError on mismatch."""
        try:
            return cls.model_validate(cls._extract(payload))
        except (ValidationError, KeyError, TypeError) as e:
            raise InvalidResponseError(f"Unexpected {cls.__name__} response: {e}") from e

    @classmethod
    def _extract(cls, payload: Any) -> Dict[str, Any]:
        return payload


class AuthenticatedUser(RemoteModel):
    login: str


class RepositoryInfo(RemoteModel):
    full_name: str
    default_branch: str


class BranchInfo(RemoteModel):
    name: str
    commit_sha: str

    @classmethod
    def _extract(cls, payload):
        return {"name": payload["name"], "commit_sha": payload["commit"]["sha"]}


class RefInfo(RemoteModel):
    ref: str
    sha: str

    @classmethod
    def _extract(cls, payload):
        return {"ref": payload["ref"], "sha": payload["object"]["sha"]}


class CommitInfo(RemoteModel):
    sha: str
    tree_sha: str
    parents: List[str] = Field(default_factory=list)

    @classmethod
    def _extract(cls, payload):
        return {
            "sha": payload["sha"],
            "tree_sha": payload["tree"]["sha"],
            "parents": [parent["sha"] for parent in payload.get("parents", [])],
        }


class TreeInfo(RemoteModel):
    sha: str


class BlobInfo(RemoteModel):
    sha: str


class TreeEntry(BaseModel):
    """One instruction in a partial tree update.

    Exactly one of ``content`` (inline UTF-8 text) or ``sha`` (a previously
    created blob) adds or replaces the file; neither means remove the path
    from the base tree.
    """

    path: str
    content: Optional[str] = None
    sha: Optional[str] = None
    mode: str = "100644"

    @property
    def is_removal(self) -> bool:
        return self.content is None and self.sha is None

    def to_payload(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"path": self.path, "mode": self.mode, "type": "blob"}
        if self.content is not None:
            entry["content"] = self.content
        else:
            entry["sha"] = self.sha
        return entry
