import pathlib
import sys
from datetime import UTC, datetime, timedelta
from itertools import count

import jwt
import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from report_workflow.config import AppConfig
from report_workflow.domain import Actor, Role
from report_workflow.lifecycle import ReportLifecycleManager
from report_workflow.main import create_app
from report_workflow.object_storage import LocalObjectStorage, ObjectStorageConfig
from report_workflow.record_store import InMemoryRecordStore
from report_workflow.security import JwtSecurityConfig

JWT_SECRET = "jwt_test_secret_for_report_workflow_suite"

PROJECT_ID = "prj_solar"
OTHER_PROJECT_ID = "prj_water"
BENEFICIARY_ID = "ben_ana"
OTHER_BENEFICIARY_ID = "ben_bruno"
ADMIN_ID = "adm_carla"


class StepClock:
    """Deterministic, strictly increasing ISO timestamps."""

    def __init__(self) -> None:
        self._base = datetime(2025, 1, 1, tzinfo=UTC)
        self._ticks = count()

    def __call__(self) -> str:
        return (self._base + timedelta(seconds=next(self._ticks))).isoformat()


def issue_token(*, subject: str, role: str | None = None, ttl_minutes: int = 30, secret: str = JWT_SECRET) -> str:
    now = datetime.now(UTC)
    payload: dict[str, object] = {
        "sub": subject,
        "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
        "iat": int(now.timestamp()),
        "iss": "test-issuer",
        "aud": "test-audience",
    }
    if role is not None:
        payload["user_role"] = role
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    store.add_project(
        {
            "id": PROJECT_ID,
            "nome": "Solar Cooperative",
            "descricao": None,
            "estado": "BA",
            "criado_em": "2024-01-01T00:00:00+00:00",
        }
    )
    store.add_project(
        {
            "id": OTHER_PROJECT_ID,
            "nome": "Water Wells",
            "descricao": None,
            "estado": "PE",
            "criado_em": "2024-01-02T00:00:00+00:00",
        }
    )
    store.assign_beneficiary(BENEFICIARY_ID, PROJECT_ID)
    store.assign_beneficiary(OTHER_BENEFICIARY_ID, PROJECT_ID)
    store.assign_beneficiary(OTHER_BENEFICIARY_ID, OTHER_PROJECT_ID)
    store.set_profile_role(BENEFICIARY_ID, "beneficiary")
    store.set_profile_role(OTHER_BENEFICIARY_ID, "beneficiary")
    store.set_profile_role(ADMIN_ID, "admin")
    return store


@pytest.fixture
def blob_store(tmp_path: pathlib.Path) -> LocalObjectStorage:
    config = ObjectStorageConfig(
        backend="local",
        bucket="attachments",
        root=str(tmp_path / "object_store"),
        prefix="",
        endpoint="",
        region="",
        access_key="",
        secret_key="",
        force_path_style=True,
    )
    return LocalObjectStorage(config=config)


@pytest.fixture
def lifecycle(record_store, blob_store) -> ReportLifecycleManager:
    return ReportLifecycleManager(
        record_store=record_store,
        blob_store=blob_store,
        clock=StepClock(),
        max_attachment_bytes=1024,
    )


@pytest.fixture
def beneficiary() -> Actor:
    return Actor(id=BENEFICIARY_ID, role=Role.BENEFICIARY)


@pytest.fixture
def other_beneficiary() -> Actor:
    return Actor(id=OTHER_BENEFICIARY_ID, role=Role.BENEFICIARY)


@pytest.fixture
def admin() -> Actor:
    return Actor(id=ADMIN_ID, role=Role.ADMIN)


@pytest.fixture
def draft_fields() -> dict[str, object]:
    return {"period": "mensal", "postos_trabalho": 5, "descricao_progresso": "progress"}


def _app_config() -> AppConfig:
    return AppConfig(cors_allow_origins=[], attachment_max_bytes=1024)


@pytest.fixture
def client(lifecycle) -> TestClient:
    """Client for an app that trusts the x-actor-id / x-actor-role headers."""
    security_cfg = JwtSecurityConfig(
        enabled=False,
        issuer="",
        audience="",
        shared_secret="",
        required_claims=["sub", "exp"],
        role_claim="user_role",
    )
    app = create_app(lifecycle=lifecycle, security_cfg=security_cfg, app_config=_app_config())
    return TestClient(app)


@pytest.fixture
def jwt_client(lifecycle) -> TestClient:
    security_cfg = JwtSecurityConfig(
        enabled=True,
        issuer="test-issuer",
        audience="test-audience",
        shared_secret=JWT_SECRET,
        required_claims=["sub", "exp"],
        role_claim="user_role",
    )
    app = create_app(lifecycle=lifecycle, security_cfg=security_cfg, app_config=_app_config())
    return TestClient(app)


def actor_headers(actor_id: str, role: str) -> dict[str, str]:
    return {"x-actor-id": actor_id, "x-actor-role": role}
