import unittest
from datetime import timedelta
from unittest import mock

from sqlalchemy.exc import IntegrityError

from tests.helpers import make_user, open_database

from authserver.core.security import hash_token, utc_now
from authserver.models.refresh_token import RefreshToken
from authserver.services import token_service
from authserver.services.token_service import ClientMeta


class RefreshRotationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.database = open_database()
        self.db = self.database.session()
        self.user = make_user(self.db)

    def tearDown(self) -> None:
        self.db.close()
        self.database.dispose()

    def test_only_the_digest_is_stored(self) -> None:
        raw = token_service.issue_refresh_token(self.db, self.user, ClientMeta("pytest", "10.0.0.1"))
        row = self.db.query(RefreshToken).one()
        self.assertEqual(row.token_hash, hash_token(raw))
        self.assertNotIn(raw, (row.token_hash, row.user_agent, row.ip_address))
        self.assertEqual(row.user_agent, "pytest")
        self.assertEqual(row.ip_address, "10.0.0.1")

    def test_verify_returns_the_active_record_with_its_user(self) -> None:
        raw = token_service.issue_refresh_token(self.db, self.user)
        record = token_service.verify_refresh_token(self.db, raw)
        self.assertIsNotNone(record)
        self.assertEqual(record.user.email, self.user.email)

    def test_verify_unknown_or_empty(self) -> None:
        self.assertIsNone(token_service.verify_refresh_token(self.db, "nope"))
        self.assertIsNone(token_service.verify_refresh_token(self.db, ""))
        self.assertIsNone(token_service.verify_refresh_token(self.db, None))

    def test_expired_token_does_not_verify(self) -> None:
        raw = token_service.issue_refresh_token(self.db, self.user)
        row = self.db.query(RefreshToken).one()
        row.expires_at = utc_now() - timedelta(seconds=1)
        self.db.commit()
        self.assertIsNone(token_service.verify_refresh_token(self.db, raw))

    def test_rotate_revokes_old_and_issues_one_new(self) -> None:
        old = token_service.issue_refresh_token(self.db, self.user)
        new = token_service.rotate_refresh_token(self.db, old, self.user.id)

        self.assertNotEqual(old, new)
        self.assertIsNone(token_service.verify_refresh_token(self.db, old))
        self.assertIsNotNone(token_service.verify_refresh_token(self.db, new))
        self.assertEqual(self.db.query(RefreshToken).filter(RefreshToken.revoked == False).count(), 1)

    def test_rotating_a_revoked_token_never_revives_it(self) -> None:
        old = token_service.issue_refresh_token(self.db, self.user)
        token_service.rotate_refresh_token(self.db, old, self.user.id)

        # Reuse is only logged: a fresh token is still minted
        with self.assertLogs("authserver.services.token_service", level="WARNING"):
            again = token_service.rotate_refresh_token(self.db, old, self.user.id)

        self.assertIsNotNone(token_service.verify_refresh_token(self.db, again))
        self.assertIsNone(token_service.verify_refresh_token(self.db, old))

    def test_failed_rotation_leaves_the_old_token_active(self) -> None:
        old = token_service.issue_refresh_token(self.db, self.user)

        # Replacement collides with the unique token_hash of the old row
        with mock.patch.object(token_service, "make_random_token", return_value=old):
            with self.assertRaises(IntegrityError):
                token_service.rotate_refresh_token(self.db, old, self.user.id)

        self.assertIsNotNone(token_service.verify_refresh_token(self.db, old))
        self.assertEqual(self.db.query(RefreshToken).count(), 1)

    def test_revoke_single_token(self) -> None:
        first = token_service.issue_refresh_token(self.db, self.user)
        second = token_service.issue_refresh_token(self.db, self.user)

        self.assertEqual(token_service.revoke_refresh_token(self.db, first), 1)
        self.assertIsNone(token_service.verify_refresh_token(self.db, first))
        self.assertIsNotNone(token_service.verify_refresh_token(self.db, second))

    def test_revoke_all(self) -> None:
        raws = [token_service.issue_refresh_token(self.db, self.user) for _ in range(3)]
        self.assertEqual(token_service.revoke_all_refresh_tokens(self.db, self.user.id), 3)
        for raw in raws:
            self.assertIsNone(token_service.verify_refresh_token(self.db, raw))
        self.assertEqual(self.db.query(RefreshToken).count(), 3)


if __name__ == "__main__":
    unittest.main()
