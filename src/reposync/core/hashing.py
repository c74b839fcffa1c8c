"""Content digests shared by every component that compares files."""

import hashlib
from typing import Union


def compute_hash(content: Union[str, bytes]) -> str:
    """Return the SHA-256 hex digest of ``content``.

    Text is encoded as UTF-8 before hashing, so ``compute_hash("x")`` equals
    ``compute_hash(b"x")``. Binary content is hashed as-is.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()
