import unittest
import uuid
from datetime import timedelta
from types import SimpleNamespace

import jwt

from tests.helpers import settings

from authserver.core.exceptions import AccessTokenExpiredError, AccessTokenInvalidError, InputError
from authserver.core.security import (
    create_access_token,
    decode_access_token,
    hash_secret,
    hash_token,
    make_random_token,
    parse_duration,
    utc_now,
    verify_secret,
)
from authserver.core.session import create_session_token, verify_session_token


def fake_user(**overrides):
    values = {"id": uuid.uuid4(), "email": "user@example.com", "name": "Test User", "role": "user"}
    values.update(overrides)
    return SimpleNamespace(**values)


class SecretHasherTests(unittest.TestCase):
    def test_hash_token_is_deterministic_sha256_hex(self) -> None:
        digest = hash_token("abc")
        self.assertEqual(digest, hash_token("abc"))
        self.assertEqual(len(digest), 64)
        self.assertEqual(digest, "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad")

    def test_hash_token_rejects_non_string(self) -> None:
        with self.assertRaises(InputError):
            hash_token(None)

    def test_random_token_is_hex_of_requested_size(self) -> None:
        token = make_random_token(48)
        self.assertEqual(len(token), 96)
        int(token, 16)
        self.assertNotEqual(token, make_random_token(48))

    def test_salted_hash_verifies_only_the_original(self) -> None:
        hashed = hash_secret("123456")
        self.assertNotEqual(hashed, "123456")
        self.assertNotEqual(hashed, hash_secret("123456"))
        self.assertTrue(verify_secret("123456", hashed))
        self.assertFalse(verify_secret("654321", hashed))

    def test_salted_hash_rejects_non_string(self) -> None:
        with self.assertRaises(InputError):
            hash_secret(123456)
        with self.assertRaises(InputError):
            verify_secret(None, hash_secret("x"))


class DurationTests(unittest.TestCase):
    def test_units(self) -> None:
        self.assertEqual(parse_duration("15m"), timedelta(minutes=15))
        self.assertEqual(parse_duration("1h"), timedelta(hours=1))
        self.assertEqual(parse_duration("7d"), timedelta(days=7))
        self.assertEqual(parse_duration("30s"), timedelta(seconds=30))
        self.assertEqual(parse_duration("900"), timedelta(seconds=900))

    def test_garbage_is_rejected(self) -> None:
        for value in ("", "15x", "m15", "1.5h"):
            with self.assertRaises(ValueError):
                parse_duration(value)


class AccessTokenTests(unittest.TestCase):
    def test_round_trip_carries_identity_claims(self) -> None:
        user = fake_user(role="admin")
        payload = decode_access_token(create_access_token(user))
        self.assertEqual(payload["sub"], str(user.id))
        self.assertEqual(payload["email"], user.email)
        self.assertEqual(payload["role"], "admin")
        self.assertEqual(payload["type"], "access")

    def test_tokens_minted_back_to_back_differ(self) -> None:
        user = fake_user()
        self.assertNotEqual(create_access_token(user), create_access_token(user))

    def test_expired_token(self) -> None:
        past = utc_now() - timedelta(minutes=5)
        token = jwt.encode(
            {"sub": "x", "type": "access", "iat": past - timedelta(minutes=15), "exp": past},
            settings.access_token_secret,
            algorithm=settings.algorithm,
        )
        with self.assertRaises(AccessTokenExpiredError):
            decode_access_token(token)

    def test_wrong_signature_is_invalid(self) -> None:
        token = jwt.encode(
            {"sub": "x", "type": "access", "exp": utc_now() + timedelta(minutes=5)},
            "some-other-secret-that-is-long-enough-000",
            algorithm=settings.algorithm,
        )
        with self.assertRaises(AccessTokenInvalidError):
            decode_access_token(token)

    def test_malformed_token_is_invalid(self) -> None:
        with self.assertRaises(AccessTokenInvalidError):
            decode_access_token("not-a-jwt")

    def test_session_token_is_not_an_access_token(self) -> None:
        with self.assertRaises(AccessTokenInvalidError):
            decode_access_token(
                jwt.encode(
                    {"sub": "x", "exp": utc_now() + timedelta(minutes=5)},
                    settings.access_token_secret,
                    algorithm=settings.algorithm,
                )
            )


class SessionStampTests(unittest.TestCase):
    def test_round_trip(self) -> None:
        user = fake_user()
        session = verify_session_token(create_session_token(user))
        self.assertEqual(
            session,
            {"id": str(user.id), "email": user.email, "name": user.name, "role": "user"},
        )

    def test_absent_or_bad_tokens_mean_no_session(self) -> None:
        self.assertIsNone(verify_session_token(None))
        self.assertIsNone(verify_session_token(""))
        self.assertIsNone(verify_session_token("garbage"))

    def test_foreign_signature_means_no_session(self) -> None:
        forged = jwt.encode(
            {"user": {"id": "1"}, "exp": utc_now() + timedelta(days=1)},
            "another-signing-key-which-is-long-enough",
            algorithm=settings.algorithm,
        )
        self.assertIsNone(verify_session_token(forged))

    def test_expired_session(self) -> None:
        past = utc_now() - timedelta(seconds=1)
        expired = jwt.encode(
            {"user": {"id": "1"}, "exp": past},
            settings.session_signing_key,
            algorithm=settings.algorithm,
        )
        self.assertIsNone(verify_session_token(expired))


if __name__ == "__main__":
    unittest.main()
