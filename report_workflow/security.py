from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import jwt

from report_workflow.domain import Actor, Role
from report_workflow.errors import ApiError


def _split_csv(raw: str) -> list[str]:
    return [x.strip() for x in raw.split(",") if x.strip()]


def _unauthorized(message: str) -> ApiError:
    return ApiError(
        code="AUTH_UNAUTHORIZED",
        message=message,
        error_class="security_sensitive",
        retryable=False,
        http_status=401,
    )


@dataclass
class AuthContext:
    actor: Actor
    claims: dict[str, Any]


@dataclass
class JwtSecurityConfig:
    enabled: bool
    issuer: str
    audience: str
    shared_secret: str
    required_claims: list[str]
    role_claim: str

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "JwtSecurityConfig":
        env = os.environ if environ is None else environ
        issuer = env.get("JWT_ISSUER", "").strip()
        audience = env.get("JWT_AUDIENCE", "").strip()
        shared_secret = env.get("JWT_SHARED_SECRET", "").strip()
        return cls(
            enabled=bool(issuer or audience or shared_secret),
            issuer=issuer,
            audience=audience,
            shared_secret=shared_secret,
            required_claims=_split_csv(env.get("JWT_REQUIRED_CLAIMS", "sub,exp")),
            role_claim=env.get("JWT_ROLE_CLAIM", "user_role").strip() or "user_role",
        )


def parse_role(raw: Any) -> Role | None:
    try:
        return Role(str(raw or "").strip().lower())
    except ValueError:
        return None


def parse_and_validate_bearer_token(
    *,
    authorization: str | None,
    cfg: JwtSecurityConfig,
    role_lookup: Callable[[str], str | None] | None = None,
) -> AuthContext:
    """Verify an HS256 bearer token and resolve the calling actor.

    The role comes from ``cfg.role_claim``; when the token does not carry it,
    ``role_lookup`` (the profiles table) is consulted.
    """
    if not authorization:
        raise _unauthorized("missing Authorization bearer token")
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise _unauthorized("invalid Authorization header")
    token = authorization[len(prefix) :].strip()
    if not token:
        raise _unauthorized("empty bearer token")
    if not cfg.shared_secret:
        raise _unauthorized("jwt shared secret not configured")

    options: dict[str, Any] = {"require": list(cfg.required_claims)}
    if not cfg.audience:
        options["verify_aud"] = False
    try:
        claims = jwt.decode(
            token,
            cfg.shared_secret,
            algorithms=["HS256"],
            audience=cfg.audience or None,
            issuer=cfg.issuer or None,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("token expired") from None
    except jwt.InvalidAudienceError:
        raise _unauthorized("jwt audience mismatch") from None
    except jwt.InvalidIssuerError:
        raise _unauthorized("jwt issuer mismatch") from None
    except jwt.MissingRequiredClaimError as exc:
        raise _unauthorized(f"missing required claim: {exc.claim}") from None
    except jwt.InvalidTokenError:
        raise _unauthorized("invalid token") from None

    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise _unauthorized("missing subject claim")
    role = parse_role(claims.get(cfg.role_claim))
    if role is None and role_lookup is not None:
        role = parse_role(role_lookup(subject))
    if role is None:
        raise _unauthorized("unable to resolve actor role")
    return AuthContext(actor=Actor(id=subject, role=role), claims=claims)


def actor_from_headers(headers: Mapping[str, str]) -> Actor:
    """Trusted-header identity used when JWT verification is not configured."""
    actor_id = str(headers.get("x-actor-id") or "").strip()
    role = parse_role(headers.get("x-actor-role"))
    if not actor_id or role is None:
        raise _unauthorized("x-actor-id and x-actor-role headers are required")
    return Actor(id=actor_id, role=role)
