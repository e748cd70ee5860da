import unittest
from datetime import datetime, timedelta, timezone

import jwt

from portfolio_api.auth import (
    Identity,
    check_credentials,
    decode_token,
    extract_bearer_token,
    issue_token,
)
from portfolio_api.config import Settings
from portfolio_api.errors import InvalidCredentials, InvalidToken, MissingToken

SETTINGS = Settings(
    admin_username="admin",
    admin_password="s3cret",
    jwt_secret="unit-secret",
    _env_file=None,
)


class CredentialTests(unittest.TestCase):
    def test_matching_credentials(self):
        identity = check_credentials("admin", "s3cret", SETTINGS)
        self.assertEqual(identity, Identity(username="admin"))

    def test_mismatch_raises_generic_error(self):
        for username, password in (("admin", "x"), ("x", "s3cret"), ("", "")):
            with self.subTest(username=username):
                with self.assertRaises(InvalidCredentials) as ctx:
                    check_credentials(username, password, SETTINGS)
                self.assertEqual(ctx.exception.detail, "Invalid credentials")

    def test_unconfigured_admin_cannot_log_in(self):
        settings = Settings(jwt_secret="unit-secret", _env_file=None)
        with self.assertRaises(InvalidCredentials):
            check_credentials("", "", settings)


class TokenTests(unittest.TestCase):
    def test_issued_token_carries_identity_and_one_hour_expiry(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        token = issue_token(Identity(username="admin"), SETTINGS, now=now)
        claims = jwt.decode(
            token,
            "unit-secret",
            algorithms=["HS256"],
            options={"verify_exp": False, "verify_iat": False},
        )
        self.assertEqual(claims["username"], "admin")
        self.assertEqual(claims["exp"] - claims["iat"], 3600)
        self.assertEqual(claims["iat"], int(now.timestamp()))

    def test_decode_is_repeatable(self):
        token = issue_token(Identity(username="admin"), SETTINGS)
        self.assertEqual(decode_token(token, SETTINGS), decode_token(token, SETTINGS))

    def test_expired_token(self):
        issued = datetime.now(timezone.utc) - timedelta(hours=2)
        token = issue_token(Identity(username="admin"), SETTINGS, now=issued)
        with self.assertRaises(InvalidToken) as ctx:
            decode_token(token, SETTINGS)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_wrong_secret(self):
        other = Settings(jwt_secret="rotated", _env_file=None)
        token = issue_token(Identity(username="admin"), other)
        with self.assertRaises(InvalidToken):
            decode_token(token, SETTINGS)

    def test_token_without_username_claim(self):
        now = int(datetime.now(timezone.utc).timestamp())
        token = jwt.encode(
            {"iat": now, "exp": now + 60}, "unit-secret", algorithm="HS256"
        )
        with self.assertRaises(InvalidToken):
            decode_token(token, SETTINGS)

    def test_token_without_expiry(self):
        token = jwt.encode({"username": "admin"}, "unit-secret", algorithm="HS256")
        with self.assertRaises(InvalidToken):
            decode_token(token, SETTINGS)


class BearerHeaderTests(unittest.TestCase):
    def test_extracts_token(self):
        self.assertEqual(extract_bearer_token("Bearer abc.def.ghi"), "abc.def.ghi")
        self.assertEqual(extract_bearer_token("bearer abc"), "abc")

    def test_rejects_malformed_headers(self):
        for header in (None, "", "Bearer", "Bearer ", "Token abc", "Bearer a b"):
            with self.subTest(header=header):
                with self.assertRaises(MissingToken) as ctx:
                    extract_bearer_token(header)
                self.assertEqual(ctx.exception.status_code, 401)


if __name__ == "__main__":
    unittest.main()
