"""FastAPI dependencies for injection into route handlers.

Admin authentication happens upstream (reverse proxy / admin shell). By the
time a request reaches us the proxy has already vetted the caller and passes
their identifier in X-Admin-User, which we record on override audit rows.
"""

from fastapi import Header, HTTPException, status

from claybook.core.config import settings


async def get_admin_actor(x_admin_user: str | None = Header(default=None)) -> str:
    """Return the acting admin's identifier or reject the request."""
    actor = (x_admin_user or "").strip()
    if not actor:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin identity required")
    return actor


async def require_cleanup_secret(x_cleanup_secret: str | None = Header(default=None)) -> None:
    """Guard maintenance endpoints when a cleanup secret is configured."""
    if settings.cleanup_secret and x_cleanup_secret != settings.cleanup_secret:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
