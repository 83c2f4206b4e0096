"""Role gate for the finance read routes.

Sessions are owned by the dashboard front end; this only checks the role cookie
it sets (`bsos-selected-role`) against the roles allowed to see financial data.
"""

from dataclasses import dataclass

from fastapi import HTTPException, Request

from bsos.core.config import get_settings

ROLE_COOKIE = "bsos-selected-role"


@dataclass(frozen=True)
class FinanceViewer:
    role: str


async def require_finance_role(request: Request) -> FinanceViewer:
    """FastAPI dependency: 401 without a role cookie, 403 for roles without finance access."""
    role = request.cookies.get(ROLE_COOKIE)
    if not role:
        raise HTTPException(status_code=401, detail="Missing role")

    if role not in get_settings().finance_roles:
        raise HTTPException(status_code=403, detail=f"Role '{role}' cannot access financial records")

    request.state.user_id = role
    return FinanceViewer(role=role)
