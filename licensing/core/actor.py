"""Authenticated actor passed explicitly into workflow services."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Actor:
    """Who is performing an action, and under which workflow role."""

    id: str | None
    role: str | None
    name: str | None = None

    @property
    def identity(self) -> str:
        """Identifier recorded in history: id, then name, then "unknown"."""
        return self.id or self.name or "unknown"

    @classmethod
    def from_claims(cls, claims: dict) -> Actor:
        """Build an actor from decoded token claims.

        Accepts the claim spellings issued by the different identity
        providers in front of the workflow (``sub``/``user_id``/``uid`` and
        ``role``/``user_role``).
        """
        raw_id = claims.get("sub") or claims.get("user_id") or claims.get("uid")
        role = claims.get("role") or claims.get("user_role")
        return cls(
            id=str(raw_id) if raw_id is not None else None,
            # A non-string role claim is treated as no role.
            role=role if isinstance(role, str) else None,
            name=claims.get("name") or claims.get("email"),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "role": self.role, "name": self.name}
