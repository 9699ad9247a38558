from typing import Optional

from pydantic import BaseModel


class User(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None

    @classmethod
    def from_auth(cls, auth_user) -> "User":
        """Build from the user object Supabase Auth returns."""
        metadata = getattr(auth_user, "user_metadata", None) or {}
        return cls(
            id=str(auth_user.id),
            email=getattr(auth_user, "email", None),
            full_name=metadata.get("full_name"),
        )

    @property
    def display_name(self) -> Optional[str]:
        if self.full_name:
            return self.full_name.split()[0]
        return None
