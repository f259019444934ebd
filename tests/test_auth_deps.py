import asyncio
import base64
import json
import unittest
from types import SimpleNamespace

from fastapi import HTTPException

from monetization.auth import deps
from monetization.core.settings import S


def run_async(coro):
    return asyncio.run(coro)


def unsigned_token(claims):
    header = base64.urlsafe_b64encode(json.dumps({"alg": "none"}).encode()).decode().rstrip("=")
    payload = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode().rstrip("=")
    return f"{header}.{payload}."


class TestAuthDeps(unittest.TestCase):
    def setUp(self):
        self._pool = S.cognito_user_pool_id
        self._client = S.cognito_app_client_id
        object.__setattr__(S, "cognito_user_pool_id", "")
        object.__setattr__(S, "cognito_app_client_id", "")

    def tearDown(self):
        object.__setattr__(S, "cognito_user_pool_id", self._pool)
        object.__setattr__(S, "cognito_app_client_id", self._client)

    def test_requires_header(self):
        req = SimpleNamespace(headers={})
        with self.assertRaises(HTTPException) as ctx:
            run_async(deps.get_authenticated_email(req))
        self.assertEqual(ctx.exception.status_code, 401)

    def test_rejects_invalid_scheme(self):
        req = SimpleNamespace(headers={"authorization": "Token abc"})
        with self.assertRaises(HTTPException) as ctx:
            run_async(deps.get_authenticated_email(req))
        self.assertEqual(ctx.exception.status_code, 401)

    def test_x_user_email_fallback_is_normalized(self):
        req = SimpleNamespace(headers={"x-user-email": " Fan@Example.com "})
        self.assertEqual(run_async(deps.get_authenticated_email(req)), "fan@example.com")

    def test_bearer_jwt_email_claim(self):
        req = SimpleNamespace(headers={"authorization": f"Bearer {unsigned_token({'email': 'Creator@Example.com'})}"})
        self.assertEqual(run_async(deps.get_authenticated_email(req)), "creator@example.com")

    def test_bearer_without_email_claim_is_rejected(self):
        req = SimpleNamespace(headers={"authorization": f"Bearer {unsigned_token({'sub': 'abc'})}"})
        with self.assertRaises(HTTPException) as ctx:
            run_async(deps.get_authenticated_email(req))
        self.assertEqual(ctx.exception.status_code, 401)


class TestRequireSameEmail(unittest.TestCase):
    def test_missing_claim_uses_authenticated(self):
        self.assertEqual(deps.require_same_email(None, "fan@example.com"), "fan@example.com")

    def test_matching_claim_case_insensitive(self):
        self.assertEqual(deps.require_same_email("FAN@example.com", "fan@example.com"), "fan@example.com")

    def test_mismatch_is_forbidden(self):
        with self.assertRaises(HTTPException) as ctx:
            deps.require_same_email("other@example.com", "fan@example.com")
        self.assertEqual(ctx.exception.status_code, 403)


if __name__ == "__main__":
    unittest.main()
