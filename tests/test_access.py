import pytest

from dams.models import Role
from dams.services.access import Action, Actor, can_perform

OWNER_ID = 10
OWNER = Actor(id=OWNER_ID, role=Role.user)
OTHER = Actor(id=11, role=Role.user)
ADMIN = Actor(id=1, role=Role.admin)
VIEWER = Actor(id=12, role=Role.viewer)


@pytest.mark.parametrize("action", [Action.replace, Action.delete, Action.share])
def test_owner_and_admin_may_mutate(action: Action) -> None:
    assert can_perform(OWNER, OWNER_ID, action) is True
    assert can_perform(ADMIN, OWNER_ID, action) is True


@pytest.mark.parametrize("action", [Action.replace, Action.delete, Action.share])
def test_grantee_and_others_may_not_mutate(action: Action) -> None:
    assert can_perform(OTHER, OWNER_ID, action) is False
    assert can_perform(OTHER, OWNER_ID, action, has_grant=True) is False
    assert can_perform(VIEWER, OWNER_ID, action, has_grant=True) is False


def test_view_needs_grant_unless_admin() -> None:
    assert can_perform(ADMIN, OWNER_ID, Action.view) is True
    assert can_perform(OTHER, OWNER_ID, Action.view, has_grant=True) is True
    assert can_perform(VIEWER, OWNER_ID, Action.view, has_grant=True) is True
    assert can_perform(OTHER, OWNER_ID, Action.view) is False


def test_owner_reads_through_owner_listing_not_shared_path() -> None:
    assert can_perform(OWNER, OWNER_ID, Action.view) is False
    assert can_perform(OWNER, OWNER_ID, Action.view, has_grant=True) is True


def test_missing_asset_denies_everyone_but_admin() -> None:
    assert can_perform(OTHER, None, Action.view, has_grant=True) is False
    assert can_perform(OWNER, None, Action.replace) is False
    assert can_perform(ADMIN, None, Action.view) is True


def test_role_is_taken_as_given() -> None:
    assert Actor(id=OWNER_ID, role=Role.admin).is_admin
    assert not VIEWER.is_admin
