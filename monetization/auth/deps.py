from __future__ import annotations

import base64
import json
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
import requests
from fastapi import HTTPException, Request

from monetization.core.normalize import normalize_email
from monetization.core.settings import S


def _cognito_enabled() -> bool:
    return bool(S.cognito_user_pool_id and S.cognito_app_client_id)


def _cognito_issuer() -> str:
    region = S.cognito_region or S.aws_region
    return f"https://cognito-idp.{region}.amazonaws.com/{S.cognito_user_pool_id}"


@lru_cache(maxsize=1)
def _cognito_jwks() -> Dict[str, Any]:
    resp = requests.get(f"{_cognito_issuer()}/.well-known/jwks.json", timeout=10)
    resp.raise_for_status()
    return resp.json()


def _signing_key(token: str) -> Any:
    try:
        kid = jwt.get_unverified_header(token).get("kid", "")
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token header") from exc
    jwk = next((k for k in _cognito_jwks().get("keys", []) if k.get("kid") == kid), None)
    if jwk is None:
        raise HTTPException(401, "Unknown signing key")
    return jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk))


def _decode_cognito_token(token: str) -> Dict[str, Any]:
    """Validate a Cognito token against the pool's JWKS and return its claims."""
    try:
        claims = jwt.decode(
            token,
            _signing_key(token),
            algorithms=["RS256"],
            audience=S.cognito_app_client_id,
            issuer=_cognito_issuer(),
        )
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(401, "Token expired") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token") from exc

    # Only ID tokens carry the email claim.
    if S.cognito_expected_token_use and claims.get("token_use") != S.cognito_expected_token_use:
        raise HTTPException(401, "Unexpected token use")
    return claims


def _decode_jwt_email(token: str) -> Optional[str]:
    if token.count(".") != 2:
        return None
    _, payload, _ = token.split(".", 2)
    if not payload:
        return None
    padding = "=" * (-len(payload) % 4)
    try:
        decoded = base64.urlsafe_b64decode(payload + padding)
        data = json.loads(decoded.decode("utf-8"))
    except (ValueError, json.JSONDecodeError, UnicodeDecodeError):
        return None
    email = data.get("email") if isinstance(data, dict) else None
    return email if isinstance(email, str) and email.strip() else None


def extract_bearer_token(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise HTTPException(401, "Missing Authorization header")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(401, "Invalid Authorization header")
    return token.strip()


async def get_authenticated_email(request: Request) -> str:
    """
    Resolve the caller's email from a Cognito ID token when Cognito is configured.

    Dev fallback: X-User-Email header, or the unverified email claim of a bearer JWT.
    """
    if _cognito_enabled() and isinstance(request, Request):
        token = extract_bearer_token(request.headers.get("authorization"))
        payload = _decode_cognito_token(token)
        email = payload.get("email")
        if not email:
            raise HTTPException(401, "Token missing email")
        return normalize_email(str(email))

    fallback_email = request.headers.get("x-user-email")
    if fallback_email:
        return normalize_email(fallback_email)

    token = extract_bearer_token(request.headers.get("authorization"))
    email = _decode_jwt_email(token)
    if not email:
        raise HTTPException(401, "Token missing email")
    return normalize_email(email)


def require_same_email(claimed: Optional[str], authenticated: str) -> str:
    """Requests may name an email only when it is the caller's own."""
    if claimed is None or not claimed.strip():
        return authenticated
    if normalize_email(claimed) != authenticated:
        raise HTTPException(403, "Email does not match the authenticated user")
    return authenticated
