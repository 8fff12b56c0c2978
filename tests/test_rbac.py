import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from ticketing.dependencies.auth import Role, User, get_current_user, role_required
from ticketing.tickets.models import AuthorType


@pytest.mark.asyncio
async def test_role_required_allows_authorized_user():
    dependency = role_required(Role.ADMIN)
    user = User("alice", (Role.ADMIN,))
    result = await dependency(user)  # type: ignore[arg-type]
    assert result.username == "alice"


@pytest.mark.asyncio
async def test_role_required_rejects_unauthorized_user():
    dependency = role_required(Role.ADMIN)
    user = User("bob", (Role.VIEWER,))
    with pytest.raises(HTTPException) as exc:
        await dependency(user)  # type: ignore[arg-type]

    assert exc.value.status_code == 403
    assert exc.value.detail == "Insufficient permissions"


@pytest.mark.asyncio
async def test_anonymous_user_is_a_viewer():
    user = await get_current_user(None)
    assert user.roles == (Role.VIEWER,)


@pytest.mark.asyncio
async def test_unknown_token_is_rejected():
    credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="nope")
    with pytest.raises(HTTPException) as exc:
        await get_current_user(credentials)

    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_expert_token_authors_events_as_expert():
    credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="expert-token")
    user = await get_current_user(credentials)

    author = user.as_author()

    assert author.id == "expert"
    assert author.name == "Support Expert"
    assert author.type is AuthorType.EXPERT
    assert User("carol", (Role.EDITOR,)).as_author().type is AuthorType.BENEFICIARY
