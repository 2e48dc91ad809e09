"""Request bodies for the server/database registry."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, constr, model_validator

Name = constr(strip_whitespace=True, min_length=1, max_length=256)


class _RegistryBody(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ServerCreate(_RegistryBody):
    name: Name
    dns: Name
    is_active: Optional[bool] = Field(default=None, alias="isActive")


class ServerUpdate(_RegistryBody):
    name: Optional[Name] = None
    dns: Optional[Name] = None
    is_active: Optional[bool] = Field(default=None, alias="isActive")

    @model_validator(mode="after")
    def reject_explicit_nulls(self) -> "ServerUpdate":
        for field in ("name", "dns", "is_active"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class DatabaseCreate(_RegistryBody):
    db_name: Name = Field(alias="dbName")
    is_active: Optional[bool] = Field(default=None, alias="isActive")


class DatabaseUpdate(_RegistryBody):
    db_name: Optional[Name] = Field(default=None, alias="dbName")
    is_active: Optional[bool] = Field(default=None, alias="isActive")

    @model_validator(mode="after")
    def reject_explicit_nulls(self) -> "DatabaseUpdate":
        for field in ("db_name", "is_active"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self
