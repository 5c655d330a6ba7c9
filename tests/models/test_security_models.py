import pytest

from oauthflow.models.security import CodeChallengeMethod, PkceMaterial


class TestPkceMaterial:
    def test_storage_layout(self):
        # Arrange
        material = PkceMaterial(
            code_verifier="v1",
            code_challenge="c1",
            code_challenge_method=CodeChallengeMethod.S256,
            request_id="state-1",
            created_at=1700000000.0,
        )

        # Act
        data = material.to_storage()

        # Assert
        assert data == {
            "codeVerifier": "v1",
            "codeChallenge": "c1",
            "codeChallengeMethod": "S256",
            "createdAt": 1700000000.0,
            "requestId": "state-1",
        }
        assert PkceMaterial.from_storage(data) == material

    def test_unknown_method_rejected(self):
        with pytest.raises(ValueError):
            PkceMaterial.from_storage(
                {"codeVerifier": "v", "codeChallenge": "c", "codeChallengeMethod": "MD5"}
            )

    def test_missing_verifier_rejected(self):
        with pytest.raises(KeyError):
            PkceMaterial.from_storage({"codeChallenge": "c", "codeChallengeMethod": "plain"})

    def test_staleness(self):
        material = PkceMaterial(code_verifier="v", code_challenge="c", created_at=1000.0)

        assert not material.is_stale(600, now=1500.0)
        assert material.is_stale(600, now=1601.0)

    def test_bind_keeps_pair(self):
        material = PkceMaterial(code_verifier="v", code_challenge="c", created_at=1000.0)

        bound = material.bind("state-2")

        assert bound.request_id == "state-2"
        assert bound.code_verifier == "v"
        assert bound.created_at == 1000.0
        assert material.request_id is None

    def test_repr_hides_verifier(self):
        material = PkceMaterial(code_verifier="secret-verifier", code_challenge="c")

        assert "secret-verifier" not in repr(material)
