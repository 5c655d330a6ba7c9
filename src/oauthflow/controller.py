"""Authorization code flow controller.

Drives one session through the four-step exchange:

    AWAITING_AUTHORIZATION -> AWAITING_CODE -> AWAITING_IDENTITY -> COMPLETE

Every network call goes through an AuthorizationBackend. A failed operation
leaves the step where it was so the caller can retry or restart.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import Any, Protocol, TypeVar
from urllib.parse import parse_qs, urlparse

from oauthflow.models.errors import (
    AuthorizationCallbackError,
    BackendError,
    ExchangeError,
    OAuth2Error,
    ValidationError,
)
from oauthflow.models.flow import (
    AuthorizationGrant,
    AuthorizationResponse,
    FlowState,
    FlowStep,
    RedirectTarget,
)
from oauthflow.models.security import PkceMaterial
from oauthflow.models.tokens import IdentitySnapshot, TokenSet
from oauthflow.services.backend import AuthorizationBackend
from oauthflow.services.security import check_redirect_state, generate_state
from oauthflow.services.storage import PkceStore, SessionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AuthorizationHandler(Protocol):
    """Strategy for the user-facing authorization step.

    Receives the authorization URL and returns the redirect URL the
    authorization server sent the user agent back to.
    """

    async def handle_authorization(self, auth_url: str) -> str: ...


class AuthorizationFlowController:
    """Owns the step sequence, PKCE material and tokens for one session.

    Not safe for concurrent use: callers serialize operations, the same way
    a wizard disables "next" until the previous call settles.
    """

    def __init__(
        self,
        backend: AuthorizationBackend,
        store: SessionStore,
        session_id: str,
        use_pkce: bool = False,
        pkce_max_age: float = 600.0,
    ):
        """Initialize the controller.

        Args:
            backend: Collaborator performing PKCE generation and HTTP calls
            store: Session-scoped store for PKCE material
            session_id: Key of this session in the store
            use_pkce: Whether the flow starts with PKCE enabled
            pkce_max_age: Seconds persisted PKCE material stays usable
        """
        self._backend = backend
        self._pkce_store = PkceStore(store, session_id)
        self.session_id = session_id
        self.pkce_max_age = pkce_max_age

        self._state = FlowState()
        self._use_pkce = use_pkce
        self._pkce: PkceMaterial | None = None
        self._pending_state: str | None = None
        self._grant: AuthorizationGrant | None = None
        self._exchanged_codes: set[str] = set()
        self._tokens: TokenSet | None = None
        self._identity: IdentitySnapshot | None = None

        self.status = ""
        self.last_error: OAuth2Error | None = None

    @property
    def step(self) -> FlowStep:
        return self._state.step

    @property
    def use_pkce(self) -> bool:
        return self._use_pkce

    @property
    def pkce_material(self) -> PkceMaterial | None:
        return self._pkce

    @property
    def grant(self) -> AuthorizationGrant | None:
        """Authorization grant waiting to be exchanged, if any."""
        return self._grant

    @property
    def tokens(self) -> TokenSet | None:
        return self._tokens

    @property
    def identity(self) -> IdentitySnapshot | None:
        return self._identity

    async def set_use_pkce(self, enabled: bool) -> None:
        """Enable or disable PKCE.

        Disabling discards any held material, in memory and in the store.

        Raises:
            BackendError: If stored material can't be cleared
        """
        if not enabled:
            try:
                await self._discard_pkce()
            except OAuth2Error as e:
                self._fail("Error clearing PKCE data", e)
                raise
            logger.debug("PKCE disabled, cleared stored material")
        self._use_pkce = enabled

    async def resume(self) -> PkceMaterial | None:
        """Restore PKCE material persisted by an earlier run of this session.

        Material older than pkce_max_age is discarded instead of restored.

        Returns:
            The restored material, or None if nothing usable was stored
        """
        try:
            material = await self._call("PKCE storage", self._pkce_store.load())
            if material is None:
                return None

            if material.is_stale(self.pkce_max_age):
                logger.warning(
                    f"Discarding PKCE material older than {self.pkce_max_age:.0f}s"
                )
                await self._call("PKCE storage", self._pkce_store.clear())
                return None
        except OAuth2Error as e:
            self._fail("Error restoring PKCE data", e)
            raise

        self._pkce = material
        self._use_pkce = True
        self._pending_state = material.request_id
        logger.info("Restored stored PKCE material")
        return material

    async def begin_pkce(self) -> PkceMaterial | None:
        """Request fresh PKCE material from the backend and persist it.

        Does nothing when PKCE is disabled.

        Raises:
            BackendError: If the backend can't produce material or it can't
                be stored
            FlowStateError: If authorization was already requested
        """
        if not self._use_pkce:
            return None

        try:
            self._state.require(FlowStep.AWAITING_AUTHORIZATION)
            material = await self._generate_pkce()
            await self._call("PKCE storage", self._pkce_store.save(material))
        except OAuth2Error as e:
            self._fail("Error generating PKCE", e)
            raise

        self._pkce = material
        self.status = (
            f"PKCE data generated (method {material.code_challenge_method.value})"
        )
        return material

    async def build_authorization_request(
        self,
        use_pkce: bool | None = None,
        code_challenge: str | None = None,
        code_challenge_method: str | None = None,
    ) -> RedirectTarget:
        """Ask the backend for the authorization URL.

        With PKCE and no explicit challenge, the held material is used,
        generating it first if needed. Calling again before a code arrives
        replaces the pending request. The caller performs the redirect.

        Args:
            use_pkce: Override the current PKCE setting; applied only if the
                request is built
            code_challenge: Explicit challenge to send
            code_challenge_method: Explicit method to send

        Raises:
            BackendError: If the backend fails to build the URL or PKCE
                material can't be stored
            FlowStateError: If called after a code was received
        """
        pkce_enabled = self._use_pkce if use_pkce is None else use_pkce

        try:
            self._state.require(
                FlowStep.AWAITING_AUTHORIZATION, FlowStep.AWAITING_CODE
            )
            if self._grant is not None:
                raise ValidationError(
                    "An authorization code is already pending; exchange it or restart"
                )

            material = self._pkce if pkce_enabled else None
            if pkce_enabled and code_challenge is None:
                if material is None:
                    material = await self._generate_pkce()
                code_challenge = material.code_challenge
                code_challenge_method = material.code_challenge_method.value

            if not pkce_enabled:
                code_challenge, code_challenge_method = "", ""

            state = generate_state()
            url = await self._call(
                "Authorization URL construction",
                self._backend.build_authorization_url(
                    use_pkce=pkce_enabled,
                    code_challenge=code_challenge or "",
                    code_challenge_method=code_challenge_method or "",
                    state=state,
                ),
            )

            if material is not None:
                material = material.bind(state)
                await self._call("PKCE storage", self._pkce_store.save(material))
            elif self._use_pkce and not pkce_enabled:
                await self._call("PKCE storage", self._pkce_store.clear())
        except OAuth2Error as e:
            self._fail("Error during authorization", e)
            raise

        self._use_pkce = pkce_enabled
        self._pkce = material
        self._pending_state = state
        if self._state.step is FlowStep.AWAITING_AUTHORIZATION:
            self._state.advance(FlowStep.AWAITING_CODE)

        self.status = f"Redirect to authorization server: {url}"
        logger.info(f"Built authorization request (pkce={pkce_enabled})")
        return RedirectTarget(url=url, state=state, uses_pkce=pkce_enabled)

    def accept_code(self, code: str, state: str | None = None) -> AuthorizationGrant:
        """Record an authorization code delivered by the redirect.

        Raises:
            ValidationError: If the code is empty
            FlowStateError: If tokens were already obtained
        """
        try:
            self._state.require(
                FlowStep.AWAITING_AUTHORIZATION, FlowStep.AWAITING_CODE
            )
            if not code or not code.strip():
                raise ValidationError("Authorization code is required")
        except OAuth2Error as e:
            self._fail("Error receiving authorization code", e)
            raise

        self._grant = AuthorizationGrant(code=code.strip(), state=state)
        if self._state.step is FlowStep.AWAITING_AUTHORIZATION:
            self._state.advance(FlowStep.AWAITING_CODE)

        self.status = "Authorization code received"
        logger.info("Received authorization code")
        return self._grant

    async def handle_redirect(self, callback_url: str) -> AuthorizationGrant:
        """Parse the authorization redirect and record its code.

        The state parameter is checked against the pending request. After a
        reload, the request is identified by the persisted PKCE material.

        Raises:
            AuthorizationCallbackError: If the server returned an error or
                the redirect carries no code
            StateValidationError: If the state is missing or doesn't match
        """
        try:
            response = self._parse_callback_url(callback_url)

            if self._pending_state is None and self._pkce is None:
                await self.resume()

            expected_state = self._pending_state
            if expected_state is not None:
                check_redirect_state(expected_state, response)
            else:
                logger.warning("No pending authorization request; state not checked")

            if response.is_error():
                raise AuthorizationCallbackError(
                    f"Authorization failed: {response.error} "
                    f"({response.error_description or 'no description'})"
                )
            if not response.is_success():
                raise AuthorizationCallbackError(
                    "Authorization redirect missing both code and error"
                )
        except OAuth2Error as e:
            self._fail("Error handling authorization redirect", e)
            raise

        return self.accept_code(response.code, state=response.state)

    async def exchange_code(
        self, code: str | None = None, code_verifier: str | None = None
    ) -> TokenSet:
        """Exchange the authorization code for tokens.

        With PKCE, the verifier defaults to the held material's. Whether it
        matches the challenge is decided by the backend.

        Args:
            code: Authorization code; defaults to the pending grant
            code_verifier: Explicit PKCE verifier

        Raises:
            ValidationError: If the code or a required verifier is missing
            ExchangeError: If the code was already exchanged or is rejected
            BackendError: If the backend fails transiently
            FlowStateError: If not in AWAITING_CODE
        """
        if code is None and self._grant is not None:
            code = self._grant.code

        try:
            if not code or not code.strip():
                raise ValidationError("Authorization code is required")
            code = code.strip()
            if code in self._exchanged_codes:
                raise ExchangeError("Authorization code has already been exchanged")
            self._state.require(FlowStep.AWAITING_CODE)

            verifier = code_verifier
            if self._use_pkce and verifier is None and self._pkce is not None:
                verifier = self._pkce.code_verifier
            if self._use_pkce and not verifier:
                raise ValidationError("PKCE is enabled but no code verifier is available")

            self.status = "Exchanging authorization code..."
            tokens = await self._call(
                "Code exchange", self._backend.exchange_code(code, verifier)
            )
        except OAuth2Error as e:
            self._fail("Error", e)
            raise

        self._exchanged_codes.add(code)
        self._tokens = tokens
        self._grant = None
        self._pending_state = None
        self._state.advance(FlowStep.AWAITING_IDENTITY)

        self.status = "Successfully exchanged authorization code for access token"
        logger.info(f"Exchanged authorization code for tokens ({tokens.instance_url})")
        await self._drop_used_pkce()
        return tokens

    async def fetch_identity(self, tokens: TokenSet | None = None) -> IdentitySnapshot:
        """Call the resource server with the access token.

        A failure here leaves the tokens in place.

        Raises:
            BackendError: If the resource call fails
            FlowStateError: If not in AWAITING_IDENTITY
        """
        tokens = tokens or self._tokens

        try:
            self._state.require(FlowStep.AWAITING_IDENTITY)
            if tokens is None:
                raise ValidationError("No tokens available")

            self.status = "Fetching identity information..."
            data = await self._call(
                "Identity fetch",
                self._backend.fetch_resource(tokens.access_token, tokens.instance_url),
            )
            if "error" in data:
                raise BackendError(f"Resource server returned error: {data['error']}")
        except OAuth2Error as e:
            self._fail("Error", e)
            raise

        self._identity = IdentitySnapshot(data=data)
        self._state.advance(FlowStep.COMPLETE)

        self.status = "Successfully fetched identity information"
        logger.info("Fetched identity information")
        return self._identity

    async def create_record(self, sobject: str, fields: dict[str, Any]) -> str:
        """Create a record on the resource server with the held token.

        Does not change the step.

        Returns:
            Id of the created record
        """
        try:
            self._state.require(FlowStep.AWAITING_IDENTITY, FlowStep.COMPLETE)
            if not sobject:
                raise ValidationError("Object type is required")

            self.status = f"Creating {sobject}..."
            record_id = await self._call(
                f"{sobject} creation",
                self._backend.create_record(
                    self._tokens.access_token,
                    self._tokens.instance_url,
                    sobject,
                    fields,
                ),
            )
        except OAuth2Error as e:
            self._fail("Error", e)
            raise

        self.status = f"Successfully created {sobject} with ID: {record_id}"
        return record_id

    async def restart(self) -> None:
        """Return to AWAITING_AUTHORIZATION, dropping all per-flow state.

        Codes exchanged earlier in the session stay unusable.

        Raises:
            BackendError: If stored PKCE material can't be cleared
        """
        try:
            await self._discard_pkce()
        except OAuth2Error as e:
            self._fail("Error restarting", e)
            raise

        self._grant = None
        self._pending_state = None
        self._tokens = None
        self._identity = None
        self.last_error = None
        self._state.reset()

        self.status = "Restarted authorization"
        logger.info("Flow restarted")

    async def authenticate(self, handler: AuthorizationHandler) -> IdentitySnapshot:
        """Run the whole flow, delegating the user step to a handler.

        Performs:
        1. PKCE generation (if enabled)
        2. Authorization URL construction
        3. User authorization via the handler
        4. Redirect processing
        5. Code exchange
        6. Identity fetch
        """
        target = await self.build_authorization_request()

        logger.debug("Handling user authorization")
        callback_url = await handler.handle_authorization(target.url)

        await self.handle_redirect(callback_url)
        await self.exchange_code()
        return await self.fetch_identity()

    async def _call(self, action: str, awaitable: Awaitable[T]) -> T:
        """Await a backend call, mapping unexpected failures to BackendError."""
        try:
            return await awaitable
        except OAuth2Error:
            raise
        except Exception as e:
            raise BackendError(f"{action} failed: {e}") from e

    def _fail(self, prefix: str, error: OAuth2Error) -> None:
        self.last_error = error
        self.status = f"{prefix}: {error}"
        logger.warning(f"{prefix} in step {self.step.value}: {error}")

    async def _generate_pkce(self) -> PkceMaterial:
        self.status = "Generating PKCE code verifier and challenge..."
        material = await self._call(
            "PKCE generation", self._backend.generate_challenge()
        )
        logger.info("Generated PKCE material")
        return material

    async def _discard_pkce(self) -> None:
        await self._call("PKCE storage", self._pkce_store.clear())
        self._pkce = None

    async def _drop_used_pkce(self) -> None:
        # A copy left behind in the store is removed by the next restart.
        self._pkce = None
        try:
            await self._call("PKCE storage", self._pkce_store.clear())
        except OAuth2Error as e:
            logger.warning(f"Could not clear used PKCE material: {e}")

    @staticmethod
    def _parse_callback_url(callback_url: str) -> AuthorizationResponse:
        try:
            parsed = urlparse(callback_url)
            query_params = parse_qs(parsed.query)
        except ValueError as e:
            raise AuthorizationCallbackError(
                f"Failed to parse callback URL: {e}"
            ) from e

        def get_single_param(key: str) -> str | None:
            values = query_params.get(key, [])
            return values[0] if values else None

        return AuthorizationResponse(
            code=get_single_param("code"),
            state=get_single_param("state"),
            error=get_single_param("error"),
            error_description=get_single_param("error_description"),
            error_uri=get_single_param("error_uri"),
        )
