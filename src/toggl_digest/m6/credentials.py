from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass

import typer


@dataclass(frozen=True)
class Credential:
    api_token: str

    @property
    def identity(self) -> str:
        return hash_token(self.api_token)


def hash_token(token: str) -> str:
    """Stable identity for cache scoping; the token itself is never stored."""
    return hashlib.sha256(token.encode()).hexdigest()


def load_credential_from_env() -> Credential:
    tok = os.environ.get("TOGGL_API_TOKEN", "").strip()
    if not tok:
        raise typer.BadParameter("missing TOGGL_API_TOKEN")
    return Credential(api_token=tok)
