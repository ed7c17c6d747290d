from __future__ import annotations

import json
import logging
import unittest

from jose import jwt

from ess_portal.errors import ApiError, upstream_rejected, upstream_unavailable
from ess_portal.logging_utils import JsonFormatter
from ess_portal.schemas import User, is_active_checkin
from ess_portal.security import (
    create_session_token,
    decode_session_token,
    fabricate_local_token,
    resolve_session,
)
from ess_portal.sessions import SessionStore
from ess_portal.settings import get_session_secret


def _user(employee_id: str = "EMP001") -> User:
    return User(id="1", employee_id=employee_id, name="John Doe", email="john.doe@company.com")


class SessionStoreTests(unittest.TestCase):
    def test_create_lookup_destroy(self) -> None:
        store = SessionStore()
        session = store.create(_user(), "tok")

        self.assertIs(store.lookup(session.session_id), session)
        self.assertEqual(store.count(), 1)
        self.assertTrue(store.destroy(session.session_id))
        self.assertFalse(store.destroy(session.session_id))
        self.assertIsNone(store.lookup(session.session_id))
        self.assertIsNone(store.lookup(None))

    def test_sessions_do_not_share_state(self) -> None:
        store = SessionStore()
        first = store.create(_user("EMP001"), "tok-1")
        second = store.create(_user("EMP002"), "tok-2")

        self.assertNotEqual(first.session_id, second.session_id)
        store.destroy(first.session_id)
        self.assertEqual(store.lookup(second.session_id).auth_token, "tok-2")


class SessionTokenTests(unittest.TestCase):
    def test_token_round_trip_resolves_session(self) -> None:
        store = SessionStore()
        session = store.create(_user(), "tok")
        token = create_session_token(session)

        self.assertEqual(decode_session_token(token)["sid"], session.session_id)
        self.assertIs(resolve_session(token, store), session)

    def test_token_for_destroyed_session_does_not_resolve(self) -> None:
        store = SessionStore()
        session = store.create(_user(), "tok")
        token = create_session_token(session)
        store.destroy(session.session_id)

        self.assertIsNone(resolve_session(token, store))

    def test_wrong_type_or_signature_is_rejected(self) -> None:
        wrong_type = jwt.encode({"sid": "x", "sub": "EMP001", "typ": "refresh"}, get_session_secret(), algorithm="HS256")
        with self.assertRaises(ApiError) as ctx:
            decode_session_token(wrong_type)
        self.assertEqual(ctx.exception.status_code, 401)

        foreign = jwt.encode({"sid": "x", "sub": "EMP001", "typ": "session"}, "other-secret", algorithm="HS256")
        with self.assertRaises(ApiError):
            decode_session_token(foreign)

    def test_local_pseudo_token_shape(self) -> None:
        token = fabricate_local_token("EMP001")
        prefix, millis, employee_id = token.split("_", 2)
        self.assertEqual(prefix, "session")
        self.assertTrue(millis.isdigit())
        self.assertEqual(employee_id, "EMP001")


class UserNormalizationTests(unittest.TestCase):
    def test_flat_employee_columns(self) -> None:
        user = User.from_upstream(
            {"status": "success", "emp_no": "E-42", "full_name": "Mariyam", "mobile": 9607771234},
            employee_id="ignored",
        )
        self.assertEqual(user.employee_id, "E-42")
        self.assertEqual(user.id, "E-42")
        self.assertEqual(user.name, "Mariyam")
        self.assertEqual(user.phone, "9607771234")

    def test_nested_data_user_and_password_dropped(self) -> None:
        user = User.from_upstream(
            {"data": {"token": "t", "user": {"id": 3, "employeeId": "EMP003", "name": "Ali", "password": "x"}}},
            employee_id="EMP003",
        )
        self.assertEqual(user.id, "3")
        self.assertNotIn("password", user.to_wire())

    def test_active_checkin_detection(self) -> None:
        self.assertTrue(is_active_checkin({"checkIn": "08:00", "checkOut": None}))
        self.assertFalse(is_active_checkin({"checkIn": "08:00", "checkOut": "17:00"}))
        self.assertFalse(is_active_checkin(None))


class JsonFormatterTests(unittest.TestCase):
    def test_sensitive_extra_fields_are_redacted(self) -> None:
        record = logging.LogRecord("ess_portal.test", logging.INFO, __file__, 1, "event", None, None)
        record.password = "hunter2"
        record.details = {"token": "abc", "employee_id": "EMP001"}

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["password"], "***")
        self.assertEqual(payload["details"], {"token": "***", "employee_id": "EMP001"})
        self.assertEqual(payload["message"], "event")

    def test_bearer_headers_and_record_time(self) -> None:
        record = logging.LogRecord("ess_portal.upstream", logging.INFO, __file__, 1, "upstream_call", None, None)
        record.created = 1792400000.0
        record.headers = {"Accept": "application/json", "X-Upstream-Auth": "Bearer tok-1"}

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["headers"]["X-Upstream-Auth"], "Bearer ***")
        self.assertEqual(payload["headers"]["Accept"], "application/json")
        self.assertEqual(payload["service"], "ess_portal")
        self.assertTrue(payload["ts"].startswith("2026-10-19T"))


class UpstreamErrorMappingTests(unittest.TestCase):
    def test_remote_401_becomes_local_unauthorized(self) -> None:
        error = upstream_rejected("Token expired", 401)

        self.assertEqual((error.status_code, error.code, error.message), (401, "UNAUTHORIZED", "Token expired"))

    def test_other_rejections_are_400_with_remote_message(self) -> None:
        for status_code in (200, 403, 422, None):
            with self.subTest(status_code=status_code):
                error = upstream_rejected("Outside office hours", status_code)
                self.assertEqual(error.status_code, 400)
                self.assertEqual(error.code, "UPSTREAM_REJECTED")
                self.assertEqual(error.message, "Outside office hours")

    def test_outage_is_503(self) -> None:
        error = upstream_unavailable()

        self.assertIsInstance(error, ApiError)
        self.assertEqual((error.status_code, error.code), (503, "UPSTREAM_UNAVAILABLE"))


if __name__ == "__main__":
    unittest.main()
