"""Authorization decisions for asset operations.

Every role/ownership rule lives in one table so call sites never re-derive
it. The evaluator is pure: callers look up ownership and grants first.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from dams.models.user import Role


class Action(str, enum.Enum):
    replace = "replace"
    delete = "delete"
    share = "share"
    view = "view"


@dataclass(frozen=True, slots=True)
class Actor:
    id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin


# (admin, owner, grantee) -> allowed; anyone else is denied.
_RULES: dict[Action, tuple[bool, bool, bool]] = {
    Action.replace: (True, True, False),
    Action.delete: (True, True, False),
    Action.share: (True, True, False),
    # Owners read their assets through the owner listing, not the shared path.
    Action.view: (True, False, True),
}


def can_perform(actor: Actor, owner_id: int | None, action: Action, *, has_grant: bool = False) -> bool:
    """Return whether ``actor`` may perform ``action`` on an asset owned by ``owner_id``.

    ``owner_id`` is None when the asset does not exist; only admins get
    through in that case, and the caller still has to report the absence.
    """
    admin_ok, owner_ok, grantee_ok = _RULES[action]
    if actor.is_admin:
        return admin_ok
    if owner_id is not None and owner_id == actor.id and owner_ok:
        return True
    if has_grant and grantee_ok:
        return owner_id is not None
    return False
