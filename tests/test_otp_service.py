import asyncio
import os
import tempfile
import unittest
from datetime import timedelta

from tests.helpers import RecordingEmailService, make_user, open_database, settings

from authserver.core.exceptions import (
    InputError,
    InvalidOTPError,
    NotFoundError,
    OTPAttemptsExceededError,
    OTPExpiredOrInvalidError,
)
from authserver.core.security import utc_now
from authserver.database import Database
from authserver.models.otp import EmailOTP
from authserver.models.user import User
from authserver.services import otp_service


def wrong_code(otp: str) -> str:
    return f"{(int(otp) + 1) % 1_000_000:06d}"


class OTPEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.database = open_database()
        self.db = self.database.session()
        self.user = make_user(self.db, verified=False)

    def tearDown(self) -> None:
        self.db.close()
        self.database.dispose()

    def verify(self, otp: str):
        return otp_service.verify_otp(self.db, self.user.email, self.user.id, otp)

    def test_generated_codes_are_six_digits(self) -> None:
        for _ in range(50):
            code = otp_service.generate_otp()
            self.assertEqual(len(code), 6)
            self.assertTrue(code.isdigit())

    def test_raw_code_is_never_stored(self) -> None:
        otp = otp_service.create_otp_record(self.db, self.user)
        row = self.db.query(EmailOTP).one()
        self.assertNotEqual(row.otp_hash, otp)
        self.assertEqual(row.attempts, 0)

    def test_correct_code_verifies_email_and_consumes_the_record(self) -> None:
        otp = otp_service.create_otp_record(self.db, self.user)
        user = self.verify(otp)
        self.assertTrue(user.is_email_verified)

        with self.assertRaises(OTPExpiredOrInvalidError):
            self.verify(otp)

    def test_wrong_code_increments_attempts(self) -> None:
        otp = otp_service.create_otp_record(self.db, self.user)
        with self.assertRaises(InvalidOTPError):
            self.verify(wrong_code(otp))
        self.assertEqual(self.db.query(EmailOTP).one().attempts, 1)

    def test_attempt_cap_blocks_even_the_correct_code(self) -> None:
        otp = otp_service.create_otp_record(self.db, self.user)
        for _ in range(settings.otp_max_attempts):
            with self.assertRaises(InvalidOTPError):
                self.verify(wrong_code(otp))

        with self.assertRaises(OTPAttemptsExceededError):
            self.verify(otp)

        fresh = otp_service.create_otp_record(self.db, self.user)
        self.assertTrue(self.verify(fresh).is_email_verified)

    def test_only_the_newest_code_is_active(self) -> None:
        first = otp_service.create_otp_record(self.db, self.user)
        second = otp_service.create_otp_record(self.db, self.user)

        active = self.db.query(EmailOTP).filter(EmailOTP.used == False, EmailOTP.revoked == False).count()
        self.assertEqual(active, 1)
        if first != second:
            with self.assertRaises(InvalidOTPError):
                self.verify(first)
        self.assertTrue(self.verify(second).is_email_verified)

    def test_expired_code(self) -> None:
        otp = otp_service.create_otp_record(self.db, self.user)
        row = self.db.query(EmailOTP).one()
        row.expires_at = utc_now() - timedelta(seconds=1)
        self.db.commit()
        with self.assertRaises(OTPExpiredOrInvalidError):
            self.verify(otp)

    def test_email_must_match_the_user(self) -> None:
        otp = otp_service.create_otp_record(self.db, self.user)
        with self.assertRaises(OTPExpiredOrInvalidError):
            otp_service.verify_otp(self.db, "someone@example.com", self.user.id, otp)


class ConcurrentAttemptTests(unittest.TestCase):
    """Two sessions on separate connections to one file-backed database."""

    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.database = Database(f"sqlite:///{os.path.join(self.tmp.name, 'otp.db')}")
        self.database.init()
        self.database.create_all()
        self.first = self.database.session()
        self.second = self.database.session()
        self.user = make_user(self.first, verified=False)
        self.otp = otp_service.create_otp_record(self.first, self.user)

    def tearDown(self) -> None:
        self.first.close()
        self.second.close()
        self.database.dispose()
        self.tmp.cleanup()

    def stored_attempts(self) -> int:
        check = self.database.session()
        try:
            return check.query(EmailOTP).one().attempts
        finally:
            check.close()

    def guess(self, session, otp: str):
        return otp_service.verify_otp(session, self.user.email, self.user.id, otp)

    def test_parallel_wrong_guesses_are_all_counted(self) -> None:
        stale = self.second.query(EmailOTP).one()
        self.assertEqual(stale.attempts, 0)

        with self.assertRaises(InvalidOTPError):
            self.guess(self.first, wrong_code(self.otp))
        with self.assertRaises(InvalidOTPError):
            self.guess(self.second, wrong_code(self.otp))

        self.assertEqual(self.stored_attempts(), 2)

    def test_stale_session_cannot_push_past_the_cap(self) -> None:
        self.second.query(EmailOTP).one()

        for _ in range(settings.otp_max_attempts):
            with self.assertRaises(InvalidOTPError):
                self.guess(self.first, wrong_code(self.otp))

        with self.assertRaises(OTPAttemptsExceededError):
            self.guess(self.second, wrong_code(self.otp))

        self.assertEqual(self.stored_attempts(), settings.otp_max_attempts)

    def test_stale_session_cannot_claim_an_exhausted_code(self) -> None:
        self.second.query(EmailOTP).one()

        for _ in range(settings.otp_max_attempts):
            with self.assertRaises(InvalidOTPError):
                self.guess(self.first, wrong_code(self.otp))

        with self.assertRaises(OTPExpiredOrInvalidError):
            self.guess(self.second, self.otp)

        check = self.database.session()
        try:
            self.assertFalse(check.query(User).one().is_email_verified)
            self.assertFalse(check.query(EmailOTP).one().used)
        finally:
            check.close()


class ResendTests(unittest.TestCase):
    def setUp(self) -> None:
        self.database = open_database()
        self.db = self.database.session()
        self.mailer = RecordingEmailService()

    def tearDown(self) -> None:
        self.db.close()
        self.database.dispose()

    def test_resend_mails_a_new_code(self) -> None:
        user = make_user(self.db, verified=False)
        otp = asyncio.run(otp_service.resend_otp(self.db, self.mailer, user.email, user.id))
        self.assertEqual(self.mailer.otps[user.email], otp)
        self.assertEqual(self.mailer.sent[0]["to"], user.email)

    def test_resend_for_verified_user(self) -> None:
        user = make_user(self.db, verified=True)
        with self.assertRaises(InputError):
            asyncio.run(otp_service.resend_otp(self.db, self.mailer, user.email, user.id))

    def test_resend_with_mismatched_email(self) -> None:
        user = make_user(self.db, verified=False)
        with self.assertRaises(NotFoundError):
            asyncio.run(otp_service.resend_otp(self.db, self.mailer, "other@example.com", user.id))
        self.assertEqual(self.mailer.sent, [])


if __name__ == "__main__":
    unittest.main()
