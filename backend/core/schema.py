from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, constr

Identifier = constr(strip_whitespace=True, min_length=1, max_length=128)


class SeedOptionsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    batch_size: int | None = Field(default=None, ge=1, le=10_000)
    overwrite_existing: bool = False
    auto_categorize: bool = False


class ConfigOperationsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    create_vector_index: bool = False
    register_trigger_rules: bool = False
    sync_categories: bool = False


class InitializeDatabaseRequest(BaseModel):
    tenant_id: Identifier


class ApplyConfigRequest(BaseModel):
    workspace_id: Identifier
    tenant_id: Identifier | None = None
    operations: ConfigOperationsModel = Field(default_factory=ConfigOperationsModel)


class ConnectionRegistration(BaseModel):
    tenant_id: Identifier
    kind: Literal["relational", "document"]
    host: constr(strip_whitespace=True, min_length=1)
    port: int = Field(ge=1, le=65535)
    database_name: constr(strip_whitespace=True, min_length=1)
    username: constr(strip_whitespace=True, min_length=1)
    password: str = ""
