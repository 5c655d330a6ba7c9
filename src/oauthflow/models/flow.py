"""Authorization flow models.

Contains the step enum driving the controller, the authorization request
and redirect models, and the single-use authorization grant.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlencode

from oauthflow.models.errors import FlowStateError


class FlowStep(str, Enum):
    """Position in the four-step authorization code exchange."""

    AWAITING_AUTHORIZATION = "awaiting_authorization"
    AWAITING_CODE = "awaiting_code"
    AWAITING_IDENTITY = "awaiting_identity"
    COMPLETE = "complete"

    @property
    def position(self) -> int:
        return _STEP_ORDER.index(self)

    @property
    def label(self) -> str:
        """Presentation label ("Step 1" .. "Step 4")."""
        return f"Step {self.position + 1}"

    def next(self) -> FlowStep | None:
        if self is FlowStep.COMPLETE:
            return None
        return _STEP_ORDER[self.position + 1]


_STEP_ORDER = [
    FlowStep.AWAITING_AUTHORIZATION,
    FlowStep.AWAITING_CODE,
    FlowStep.AWAITING_IDENTITY,
    FlowStep.COMPLETE,
]


@dataclass
class FlowState:
    """Mutable position of a single session in the flow.

    Only moves forward one step at a time. The one way back is reset(),
    which callers use to restart from authorization.
    """

    step: FlowStep = FlowStep.AWAITING_AUTHORIZATION

    def require(self, *allowed: FlowStep) -> None:
        """Raise FlowStateError unless the current step is one of allowed."""
        if self.step not in allowed:
            expected = ", ".join(s.value for s in allowed)
            raise FlowStateError(
                f"Operation not allowed in step {self.step.value} "
                f"(expected {expected})"
            )

    def advance(self, to: FlowStep) -> None:
        """Advance to the immediately following step."""
        if self.step.next() is not to:
            raise FlowStateError(f"Cannot move from {self.step.value} to {to.value}")
        self.step = to

    def reset(self) -> None:
        self.step = FlowStep.AWAITING_AUTHORIZATION


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters for the web server flow."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    state: str
    scope: str | None = None
    code_challenge: str | None = None  # RFC 7636
    code_challenge_method: str | None = None

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL."""
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
        }

        if self.scope:
            params["scope"] = self.scope
        params["state"] = self.state

        if self.code_challenge:
            params["code_challenge"] = self.code_challenge
            params["code_challenge_method"] = self.code_challenge_method or "S256"

        return f"{self.authorization_endpoint}?{urlencode(params)}"


@dataclass(frozen=True)
class RedirectTarget:
    """Authorization URL the caller must send the user agent to."""

    url: str
    state: str
    uses_pkce: bool = False


@dataclass(frozen=True)
class AuthorizationResponse:
    """Parameters parsed from the authorization server's redirect."""

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    def is_success(self) -> bool:
        return self.error is None and self.code is not None

    def is_error(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class AuthorizationGrant:
    """One-time authorization code returned by the authorization server."""

    code: str = field(repr=False)
    state: str | None = None
    received_at: float = field(default_factory=time.time)
