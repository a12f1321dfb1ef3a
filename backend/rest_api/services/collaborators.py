"""
Collaborator interfaces consumed by the order engine.

Catalog, branch settings, recipes and the audit log are owned by other
services. The engine only talks to them through these protocols; the
``Sql*`` classes are the default implementations over the shared database.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from rest_api.models import Branch, DiningTable, MenuItem, Modifier, Recipe
from rest_api.services.audit import EntityRef, SqlAuditSink


# =============================================================================
# Snapshots
# =============================================================================


@dataclass(frozen=True)
class MenuItemSnapshot:
    id: int
    branch_id: int
    name: str
    price_cents: int
    available: bool


@dataclass(frozen=True)
class ModifierSnapshot:
    id: int
    branch_id: int
    menu_item_id: int | None  # None: applies to any item
    name: str
    extra_price_cents: int
    available: bool


@dataclass(frozen=True)
class BranchRates:
    branch_id: int
    code: str
    tax_rate: Decimal
    service_rate: Decimal
    timezone: str | None


@dataclass(frozen=True)
class RecipeLine:
    stock_item_id: int
    qty_per_serving: Decimal


# =============================================================================
# Protocols
# =============================================================================


class CatalogProvider(Protocol):
    def resolve_menu_item(self, menu_item_id: int) -> MenuItemSnapshot | None: ...

    def resolve_modifier(self, modifier_id: int) -> ModifierSnapshot | None: ...


class BranchSettingsProvider(Protocol):
    def get_branch_rates(self, branch_id: int) -> BranchRates | None: ...

    def has_table(self, branch_id: int, table_id: int) -> bool: ...


class RecipeProvider(Protocol):
    def get_recipe(self, menu_item_id: int) -> list[RecipeLine]: ...


class AuditSink(Protocol):
    def record_audit(
        self,
        user_id: int | None,
        action: str,
        entity_ref: EntityRef,
        meta: dict[str, Any] | None = None,
    ) -> None: ...


# =============================================================================
# SQLAlchemy implementations
# =============================================================================


class SqlCatalogProvider:
    def __init__(self, db: Session):
        self._db = db

    def resolve_menu_item(self, menu_item_id: int) -> MenuItemSnapshot | None:
        item = self._db.get(MenuItem, menu_item_id)
        if item is None:
            return None
        return MenuItemSnapshot(
            id=item.id,
            branch_id=item.branch_id,
            name=item.name,
            price_cents=item.price_cents,
            available=item.is_available,
        )

    def resolve_modifier(self, modifier_id: int) -> ModifierSnapshot | None:
        modifier = self._db.get(Modifier, modifier_id)
        if modifier is None:
            return None
        return ModifierSnapshot(
            id=modifier.id,
            branch_id=modifier.branch_id,
            menu_item_id=modifier.menu_item_id,
            name=modifier.name,
            extra_price_cents=modifier.extra_price_cents,
            available=modifier.is_available,
        )


class SqlBranchSettingsProvider:
    def __init__(self, db: Session):
        self._db = db

    def get_branch_rates(self, branch_id: int) -> BranchRates | None:
        # Imported here: the domain package imports this module
        from rest_api.services.domain.pricing import rate_from_bps

        branch = self._db.scalar(
            select(Branch).where(Branch.id == branch_id, Branch.is_active.is_(True))
        )
        if branch is None:
            return None
        return BranchRates(
            branch_id=branch.id,
            code=branch.code,
            tax_rate=rate_from_bps(branch.tax_rate_bps),
            service_rate=rate_from_bps(branch.service_rate_bps),
            timezone=branch.timezone,
        )

    def has_table(self, branch_id: int, table_id: int) -> bool:
        table_id_found = self._db.scalar(
            select(DiningTable.id).where(
                DiningTable.id == table_id,
                DiningTable.branch_id == branch_id,
                DiningTable.is_active.is_(True),
            )
        )
        return table_id_found is not None


class SqlRecipeProvider:
    def __init__(self, db: Session):
        self._db = db

    def get_recipe(self, menu_item_id: int) -> list[RecipeLine]:
        rows = self._db.scalars(
            select(Recipe).where(Recipe.menu_item_id == menu_item_id).order_by(Recipe.stock_item_id)
        ).all()
        return [
            RecipeLine(stock_item_id=row.stock_item_id, qty_per_serving=Decimal(row.qty_per_serving))
            for row in rows
        ]


@dataclass
class Collaborators:
    """The set of collaborators one unit of work talks to."""

    catalog: CatalogProvider
    branches: BranchSettingsProvider
    recipes: RecipeProvider
    audit: AuditSink

    @classmethod
    def for_session(cls, db: Session) -> "Collaborators":
        return cls(
            catalog=SqlCatalogProvider(db),
            branches=SqlBranchSettingsProvider(db),
            recipes=SqlRecipeProvider(db),
            audit=SqlAuditSink(db),
        )
