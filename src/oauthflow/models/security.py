"""PKCE material for the authorization code flow.

The controller treats these values as opaque: it stores, persists and
forwards them, but never recomputes or checks the challenge itself.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CodeChallengeMethod(str, Enum):
    """Code challenge transformations from RFC 7636 Section 4.2."""

    PLAIN = "plain"
    S256 = "S256"


@dataclass(frozen=True)
class PkceMaterial:
    """Verifier/challenge pair binding an authorization request to its exchange."""

    code_verifier: str = field(repr=False)
    code_challenge: str
    code_challenge_method: CodeChallengeMethod = CodeChallengeMethod.S256

    # Binding to the authorization request the material was issued for
    request_id: str | None = None
    created_at: float = field(default_factory=time.time)

    def is_stale(self, max_age: float, now: float | None = None) -> bool:
        """Check if the material is older than max_age seconds."""
        current = time.time() if now is None else now
        return current - self.created_at > max_age

    def bind(self, request_id: str) -> PkceMaterial:
        """Return a copy bound to the given authorization request state."""
        return PkceMaterial(
            code_verifier=self.code_verifier,
            code_challenge=self.code_challenge,
            code_challenge_method=self.code_challenge_method,
            request_id=request_id,
            created_at=self.created_at,
        )

    def to_storage(self) -> dict[str, Any]:
        """Serialize to the persisted "pkceData" layout."""
        data: dict[str, Any] = {
            "codeVerifier": self.code_verifier,
            "codeChallenge": self.code_challenge,
            "codeChallengeMethod": self.code_challenge_method.value,
            "createdAt": self.created_at,
        }
        if self.request_id:
            data["requestId"] = self.request_id
        return data

    @classmethod
    def from_storage(cls, data: dict[str, Any]) -> PkceMaterial:
        """Load material from the persisted "pkceData" layout.

        Raises:
            KeyError: If a required key is missing
            ValueError: If the challenge method is unknown
        """
        return cls(
            code_verifier=data["codeVerifier"],
            code_challenge=data["codeChallenge"],
            code_challenge_method=CodeChallengeMethod(data["codeChallengeMethod"]),
            request_id=data.get("requestId"),
            created_at=float(data.get("createdAt", time.time())),
        )
