from __future__ import annotations

import pytest

from conftest import ADMIN_ID, BENEFICIARY_ID, JWT_SECRET, PROJECT_ID, issue_token
from report_workflow.domain import Role
from report_workflow.errors import ApiError
from report_workflow.security import (
    JwtSecurityConfig,
    actor_from_headers,
    parse_and_validate_bearer_token,
)


def _cfg(**overrides) -> JwtSecurityConfig:
    values = {
        "enabled": True,
        "issuer": "test-issuer",
        "audience": "test-audience",
        "shared_secret": JWT_SECRET,
        "required_claims": ["sub", "exp"],
        "role_claim": "user_role",
    }
    values.update(overrides)
    return JwtSecurityConfig(**values)


def _bearer(token: str) -> str:
    return f"Bearer {token}"


def test_valid_token_resolves_actor_from_role_claim():
    ctx = parse_and_validate_bearer_token(
        authorization=_bearer(issue_token(subject=ADMIN_ID, role="admin")),
        cfg=_cfg(),
    )
    assert ctx.actor.id == ADMIN_ID
    assert ctx.actor.role == Role.ADMIN
    assert ctx.claims["sub"] == ADMIN_ID


def test_missing_role_claim_falls_back_to_profile_lookup():
    lookups: list[str] = []

    def role_lookup(user_id: str) -> str | None:
        lookups.append(user_id)
        return "beneficiary"

    ctx = parse_and_validate_bearer_token(
        authorization=_bearer(issue_token(subject=BENEFICIARY_ID)),
        cfg=_cfg(),
        role_lookup=role_lookup,
    )
    assert ctx.actor.role == Role.BENEFICIARY
    assert lookups == [BENEFICIARY_ID]


@pytest.mark.parametrize(
    ("authorization", "message"),
    [
        (None, "missing Authorization bearer token"),
        ("Token abc", "invalid Authorization header"),
        ("Bearer   ", "empty bearer token"),
        ("Bearer not-a-jwt", "invalid token"),
    ],
)
def test_malformed_authorization_is_rejected(authorization, message):
    with pytest.raises(ApiError) as exc_info:
        parse_and_validate_bearer_token(authorization=authorization, cfg=_cfg())
    assert exc_info.value.code == "AUTH_UNAUTHORIZED"
    assert exc_info.value.http_status == 401
    assert exc_info.value.message == message


def test_expired_token_is_rejected():
    token = issue_token(subject=ADMIN_ID, role="admin", ttl_minutes=-5)
    with pytest.raises(ApiError) as exc_info:
        parse_and_validate_bearer_token(authorization=_bearer(token), cfg=_cfg())
    assert exc_info.value.message == "token expired"


def test_wrong_secret_audience_and_issuer_are_rejected():
    token = issue_token(subject=ADMIN_ID, role="admin")
    other_secret = "another_secret_value_of_sufficient_length"

    with pytest.raises(ApiError, match="invalid token"):
        parse_and_validate_bearer_token(authorization=_bearer(token), cfg=_cfg(shared_secret=other_secret))
    with pytest.raises(ApiError, match="audience mismatch"):
        parse_and_validate_bearer_token(authorization=_bearer(token), cfg=_cfg(audience="other-audience"))
    with pytest.raises(ApiError, match="issuer mismatch"):
        parse_and_validate_bearer_token(authorization=_bearer(token), cfg=_cfg(issuer="other-issuer"))


def test_unresolvable_role_is_rejected():
    token = issue_token(subject="usr_unknown")
    with pytest.raises(ApiError, match="unable to resolve actor role"):
        parse_and_validate_bearer_token(authorization=_bearer(token), cfg=_cfg(), role_lookup=lambda _uid: None)


def test_security_config_from_env():
    cfg = JwtSecurityConfig.from_env({"JWT_SHARED_SECRET": "s3cret", "JWT_REQUIRED_CLAIMS": "sub, exp, iat"})
    assert cfg.enabled is True
    assert cfg.required_claims == ["sub", "exp", "iat"]
    assert cfg.role_claim == "user_role"

    assert JwtSecurityConfig.from_env({}).enabled is False


def test_actor_from_headers():
    actor = actor_from_headers({"x-actor-id": "ben_1", "x-actor-role": "Beneficiary"})
    assert actor.id == "ben_1"
    assert actor.role == Role.BENEFICIARY

    with pytest.raises(ApiError):
        actor_from_headers({"x-actor-id": "ben_1", "x-actor-role": "superuser"})


def test_api_requires_bearer_token_when_jwt_enabled(jwt_client):
    resp = jwt_client.get("/api/v1/reports")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "AUTH_UNAUTHORIZED"
    assert resp.headers["x-trace-id"]

    health = jwt_client.get("/api/v1/health")
    assert health.status_code == 200


def test_api_uses_token_subject_as_actor(jwt_client):
    token = issue_token(subject=BENEFICIARY_ID)
    headers = {"Authorization": _bearer(token)}

    created = jwt_client.post(
        "/api/v1/reports",
        json={"project_id": PROJECT_ID, "period": "mensal", "descricao_progresso": "progress", "postos_trabalho": 2},
        headers=headers,
    )
    assert created.status_code == 201
    assert created.json()["data"]["beneficiary_id"] == BENEFICIARY_ID

    # Spoofed identity headers are ignored once JWT verification is on.
    spoofed = jwt_client.get(
        "/api/v1/reports",
        headers={**headers, "x-actor-id": ADMIN_ID, "x-actor-role": "admin"},
    )
    assert spoofed.status_code == 200
    assert [r["beneficiary_id"] for r in spoofed.json()["data"]["items"]] == [BENEFICIARY_ID]
