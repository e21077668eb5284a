import pytest
from fastapi import HTTPException

from dams.models import Role
from dams.services.auth import _parse_payload


def test_parse_payload_success() -> None:
    actor = _parse_payload({"sub": "123", "role": "admin", "email": "u@example.com"})
    assert actor.id == 123
    assert actor.role is Role.admin
    assert actor.is_admin


def test_parse_payload_defaults_role_to_user() -> None:
    actor = _parse_payload({"user_id": 7})
    assert actor.id == 7
    assert actor.role is Role.user


def test_parse_payload_requires_user_id() -> None:
    with pytest.raises(HTTPException) as exc:
        _parse_payload({"role": "user"})
    assert exc.value.status_code == 401


def test_parse_payload_rejects_unknown_role() -> None:
    with pytest.raises(HTTPException):
        _parse_payload({"sub": "1", "role": "superuser"})
