# QMR Guard - Declarative gate rules (tagged variants, interpreted by guard.gate.Gate)
from typing import Annotated, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from .roles import Role


class _Rule(BaseModel):
    model_config = ConfigDict(frozen=True)


class AllowAlways(_Rule):
    kind: Literal["allow"] = "allow"


class DenyAlways(_Rule):
    kind: Literal["deny"] = "deny"


class PermissionCheck(_Rule):
    kind: Literal["permission"] = "permission"
    permission: str


class ResourceOwnershipCheck(_Rule):
    """Owner role is either fixed on the rule or read from a named call argument."""
    kind: Literal["ownership"] = "ownership"
    id_param: str = "id"
    owner_role: Role | None = None
    owner_role_param: str | None = None

    @model_validator(mode="after")
    def _one_owner_source(self):
        if (self.owner_role is None) == (self.owner_role_param is None):
            raise ValueError("exactly one of owner_role / owner_role_param is required")
        return self


class Composite(_Rule):
    """AND: every subrule must allow."""
    kind: Literal["all"] = "all"
    rules: tuple["Rule", ...] = Field(..., min_length=1)


Rule = Annotated[
    Union[AllowAlways, DenyAlways, PermissionCheck, ResourceOwnershipCheck, Composite],
    Field(discriminator="kind"),
]

Composite.model_rebuild()

rule_adapter = TypeAdapter(Rule)


def parse_rule(data) -> Rule:
    """Build a Rule from its model_dump() form."""
    return rule_adapter.validate_python(data)


# --- constructors used by gate maps ---
allow = AllowAlways()
deny = DenyAlways()


def has_permission(permission: str) -> PermissionCheck:
    return PermissionCheck(permission=permission)


def owns_resource(id_param: str = "id", owner_role: Role | str | None = None,
                  owner_role_param: str | None = None) -> ResourceOwnershipCheck:
    return ResourceOwnershipCheck(id_param=id_param, owner_role=owner_role, owner_role_param=owner_role_param)


def all_of(*rules) -> Composite:
    return Composite(rules=tuple(rules))
