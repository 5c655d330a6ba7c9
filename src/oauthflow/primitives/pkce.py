"""PKCE (Proof Key for Code Exchange) material generation.

Implements RFC 7636 verifier generation and challenge derivation. This runs
on the backend side of the flow; the controller only carries the result.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import string

from oauthflow.models.errors import PKCEError
from oauthflow.models.security import CodeChallengeMethod, PkceMaterial

# RFC 7636 Section 4.1 unreserved characters
VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128


class PKCEManager:
    """Generates PKCE material for authorization code flows.

    This implementation follows RFC 7636 requirements:
    - Code verifiers drawn from the 66-character unreserved alphabet
    - S256 (SHA256 + base64url) or plain challenge derivation
    - Verifier length between 43 and 128 characters
    """

    def __init__(
        self,
        method: CodeChallengeMethod = CodeChallengeMethod.S256,
        verifier_length: int = MAX_VERIFIER_LENGTH,
    ):
        if not (MIN_VERIFIER_LENGTH <= verifier_length <= MAX_VERIFIER_LENGTH):
            raise ValueError(
                f"verifier_length must be {MIN_VERIFIER_LENGTH}-{MAX_VERIFIER_LENGTH}"
            )
        self.method = method
        self.verifier_length = verifier_length

    def generate_material(self) -> PkceMaterial:
        """Generate fresh PKCE material for one authorization flow.

        Returns:
            PkceMaterial: Verifier, derived challenge and method

        Raises:
            PKCEError: If generation fails
        """
        try:
            code_verifier = self._generate_code_verifier()
            code_challenge = self.derive_challenge(code_verifier, self.method)

            return PkceMaterial(
                code_verifier=code_verifier,
                code_challenge=code_challenge,
                code_challenge_method=self.method,
            )

        except Exception as e:
            raise PKCEError(f"Failed to generate PKCE material: {e}") from e

    @staticmethod
    def derive_challenge(
        code_verifier: str, method: CodeChallengeMethod = CodeChallengeMethod.S256
    ) -> str:
        """Derive the code challenge for a verifier.

        RFC 7636 Section 4.2: for S256 the challenge is
        BASE64URL-ENCODE(SHA256(ASCII(code_verifier))); for plain it is the
        verifier itself.
        """
        if method is CodeChallengeMethod.PLAIN:
            return code_verifier

        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    def _generate_code_verifier(self) -> str:
        """Generate a cryptographically secure code verifier.

        RFC 7636 Section 4.1: [A-Z] / [a-z] / [0-9] / "-" / "." / "_" / "~"
        """
        return "".join(
            secrets.choice(VERIFIER_ALPHABET) for _ in range(self.verifier_length)
        )
