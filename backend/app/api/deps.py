"""Identity dependencies for FastAPI routes.

Identity is resolved upstream (gateway / session layer) and forwarded as
headers; this module only turns them into an ``Actor``.
"""

from fastapi import Depends, Header, HTTPException, status

from app.core.actor import Actor

_TRUTHY = {"1", "true", "yes"}


async def get_current_actor(
    x_user_id: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
    x_user_admin: str | None = Header(default=None),
) -> Actor:
    """Resolve the caller from ``X-User-Id`` / ``X-User-Name`` / ``X-User-Admin``."""
    try:
        user_id = int(x_user_id or 0)
    except ValueError:
        user_id = 0
    if user_id <= 0:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    return Actor(
        id=user_id,
        name=(x_user_name or "").strip(),
        is_admin=(x_user_admin or "").strip().lower() in _TRUTHY,
    )


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Require an admin caller."""
    if not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return actor
