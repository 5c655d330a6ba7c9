from typing import Any

import pytest

from oauthflow.models.errors import BackendError, ExchangeError
from oauthflow.models.flow import AuthorizationRequest
from oauthflow.models.security import CodeChallengeMethod, PkceMaterial
from oauthflow.models.tokens import TokenSet
from oauthflow.primitives.pkce import PKCEManager
from oauthflow.services.storage import InMemorySessionStore


class FakeAuthorizationServer:
    """In-memory AuthorizationBackend that behaves like a real server.

    Codes are single-use and bound to the challenge sent with the
    authorization request that produced them.
    """

    def __init__(self):
        self.calls: list[str] = []
        self.next_material: PkceMaterial | None = None
        self.fail_next: Exception | None = None
        self.resource: dict[str, Any] = {
            "DailyApiRequests": {"Max": 15000, "Remaining": 14998}
        }
        self.created: list[tuple[str, dict[str, Any]]] = []
        self.last_state: str | None = None
        self._last_challenge: tuple[str, str] | None = None
        self._verifiers: dict[str, str] = {}
        self._issued: dict[str, tuple[str, str] | None] = {}
        self._used: set[str] = set()

    def _maybe_fail(self) -> None:
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    def authorize(self, code: str = "abc123") -> str:
        """Simulate the user approving the last authorization request."""
        self._issued[code] = self._last_challenge
        return code

    def redirect_url(self, code: str = "abc123", state: str | None = None) -> str:
        self.authorize(code)
        state = self.last_state if state is None else state
        return f"https://app.example.com/callback?code={code}&state={state}"

    async def generate_challenge(self) -> PkceMaterial:
        self.calls.append("generate_challenge")
        self._maybe_fail()
        material = self.next_material or PKCEManager().generate_material()
        self.next_material = None
        self._verifiers[material.code_challenge] = material.code_verifier
        return material

    async def build_authorization_url(
        self,
        use_pkce: bool,
        code_challenge: str,
        code_challenge_method: str,
        state: str | None = None,
    ) -> str:
        self.calls.append("build_authorization_url")
        self._maybe_fail()
        self.last_state = state
        self._last_challenge = (
            (code_challenge, code_challenge_method) if use_pkce else None
        )
        return AuthorizationRequest(
            authorization_endpoint="https://login.example.com/services/oauth2/authorize",
            client_id="client-123",
            redirect_uri="https://app.example.com/callback",
            state=state or "fake-state",
            code_challenge=code_challenge if use_pkce else None,
            code_challenge_method=code_challenge_method if use_pkce else None,
        ).build_authorization_url()

    async def exchange_code(self, code: str, code_verifier: str | None = None) -> TokenSet:
        self.calls.append("exchange_code")
        self._maybe_fail()
        if code not in self._issued or code in self._used:
            raise ExchangeError("invalid_grant: authorization code is invalid or expired")

        challenge = self._issued[code]
        if challenge is not None:
            expected, method = challenge
            if code_verifier is None:
                raise ExchangeError("invalid_grant: code verifier required")
            if expected in self._verifiers:
                matches = self._verifiers[expected] == code_verifier
            else:
                derived = PKCEManager.derive_challenge(
                    code_verifier, CodeChallengeMethod(method)
                )
                matches = derived == expected
            if not matches:
                raise ExchangeError("invalid_grant: invalid code verifier")

        self._used.add(code)
        return TokenSet(access_token="tok", instance_url="https://inst")

    async def fetch_resource(self, access_token: str, instance_url: str) -> dict[str, Any]:
        self.calls.append("fetch_resource")
        self._maybe_fail()
        if access_token != "tok":
            raise BackendError("INVALID_SESSION_ID: Session expired or invalid")
        return dict(self.resource)

    async def create_record(
        self,
        access_token: str,
        instance_url: str,
        sobject: str,
        fields: dict[str, Any],
    ) -> str:
        self.calls.append("create_record")
        self._maybe_fail()
        self.created.append((sobject, fields))
        return f"001{len(self.created):015d}"


@pytest.fixture
def server() -> FakeAuthorizationServer:
    return FakeAuthorizationServer()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()
