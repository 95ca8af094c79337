"""Pydantic schemas for caller identity."""

from enum import Enum

from pydantic import BaseModel, Field


class CallerRole(str, Enum):
    """Role issued by the identity provider."""

    ADMIN = "admin"
    STAFF = "staff"
    CUSTOMER = "customer"


class Caller(BaseModel):
    """The identity making a request.

    The chat subsystem does no authentication itself; this is whatever the
    identity provider vouched for (or an anonymous guest).
    """

    id: str | None = Field(None, description="Identity id, None for anonymous guests")
    name: str = Field(default="Guest")
    role: CallerRole = Field(default=CallerRole.CUSTOMER)

    @property
    def is_admin(self) -> bool:
        return self.role == CallerRole.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role == CallerRole.STAFF

    @property
    def is_customer(self) -> bool:
        return self.role == CallerRole.CUSTOMER


GUEST = Caller()
