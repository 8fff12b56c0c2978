from collections.abc import Callable
from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ticketing.tickets.models import AuthorType, EventAuthor


class Role(str, Enum):
    """Supported roles."""

    ADMIN = "admin"
    EXPERT = "expert"
    EDITOR = "editor"
    VIEWER = "viewer"


class User:
    """Simple representation of an authenticated user."""

    def __init__(self, username: str, roles: tuple[Role, ...], *, name: str | None = None):
        self.username = username
        self.name = name or username
        self.roles = roles

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    @property
    def is_expert(self) -> bool:
        return self.has_role(Role.EXPERT)

    def as_author(self) -> EventAuthor:
        author_type = AuthorType.EXPERT if self.is_expert else AuthorType.BENEFICIARY
        return EventAuthor(id=self.username, name=self.name, type=author_type)


bearer_scheme = HTTPBearer(auto_error=False)

_TOKEN_MAP: dict[str, tuple[str, str, tuple[Role, ...]]] = {
    "admin-token": ("admin", "Administrator", (Role.ADMIN, Role.EXPERT, Role.EDITOR, Role.VIEWER)),
    "expert-token": ("expert", "Support Expert", (Role.EXPERT, Role.EDITOR, Role.VIEWER)),
    "editor-token": ("editor", "Customer Editor", (Role.EDITOR, Role.VIEWER)),
    "viewer-token": ("viewer", "Customer Viewer", (Role.VIEWER,)),
}


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)]
) -> User:
    """Map a static bearer token to a known user.

    Token verification belongs to the hosting platform; anonymous callers are
    treated as viewers.
    """

    if credentials is None:
        return User(username="anonymous", roles=(Role.VIEWER,))

    if credentials.credentials not in _TOKEN_MAP:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    username, name, roles = _TOKEN_MAP[credentials.credentials]
    return User(username=username, roles=roles, name=name)


def role_required(role: Role) -> Callable[[User], User]:
    """Dependency factory ensuring the current user has the requested role."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.has_role(role):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_user)]
