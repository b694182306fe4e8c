from fastapi import APIRouter, Depends

from mealticket.api.deps import require_principal
from mealticket.core.permissions import Principal
from mealticket.schemas.user import Me

router = APIRouter(prefix="/me", tags=["Me"])


@router.get("/", response_model=Me)
def get_me(current_user: Principal = Depends(require_principal)):
    """Return the identity and role asserted by the caller's token."""
    return Me(
        user_id=current_user.user_id,
        role=current_user.role.value if current_user.role else None,
    )
