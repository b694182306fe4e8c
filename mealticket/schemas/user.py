from typing import Optional
from pydantic import BaseModel


# Identity asserted by the bearer token (GET /me)
class Me(BaseModel):
    user_id: str
    role: Optional[str] = None

