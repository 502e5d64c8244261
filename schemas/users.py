from typing import Optional

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Caller identity as asserted by the identity provider's token."""

    id: str
    email: Optional[str] = None
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
