"""Tenant scope: every tenant, exactly one, or only rows without a tenant.

Every query against a tenant-scoped table renders the scope through
:func:`scope_clause`, so a global scope matches rows regardless of their
``tenant_id`` and a tenant scope matches only that tenant's rows.
:data:`NO_TENANT` matches only rows whose ``tenant_id`` is NULL; the rollup
worker merges tenant-less hits with it so they never fold into a tenant's row.
"""

from dataclasses import dataclass
from typing import Union

from sqlalchemy import ColumnElement, true
from sqlalchemy.orm import InstrumentedAttribute


@dataclass(frozen=True)
class AllTenants:
    """Apply to every tenant (and to rows without a tenant)."""

    @property
    def tenant_id(self) -> None:
        return None


@dataclass(frozen=True)
class Tenant:
    """Apply to a single tenant only."""

    tenant_id: int


@dataclass(frozen=True)
class NoTenant:
    """Apply only to rows stored without a tenant."""

    @property
    def tenant_id(self) -> None:
        return None


TenantScope = Union[AllTenants, Tenant, NoTenant]

GLOBAL = AllTenants()
NO_TENANT = NoTenant()


def scope_for(tenant_id: int | None) -> TenantScope:
    """Build a scope from an optional tenant id. Zero is a valid tenant."""
    if tenant_id is None:
        return GLOBAL
    return Tenant(tenant_id)


def row_scope(tenant_id: int | None) -> TenantScope:
    """Scope that matches exactly the rows of ``tenant_id``, NULL included."""
    if tenant_id is None:
        return NO_TENANT
    return Tenant(tenant_id)


def scope_clause(scope: TenantScope, column: InstrumentedAttribute) -> ColumnElement[bool]:
    if isinstance(scope, Tenant):
        return column == scope.tenant_id
    if isinstance(scope, NoTenant):
        return column.is_(None)
    return true()
