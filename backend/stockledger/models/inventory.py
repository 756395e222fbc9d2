from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from stockledger.time_utils import to_utc_z, to_iso_date

# Provenance of opening/closing rows
SOURCE_MANUAL = "MANUAL"
SOURCE_AUTO = "AUTO"

PAYMENT_MODES = ("cash", "transfer")

QUANTITY = db.Numeric(14, 3)
MONEY = db.Numeric(14, 2)


def _dec(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


class Item(db.Model):
    """
    Item master data.

    MULTI-TENANT: Items belong to an organization. branch_id NULL means the
    item is shared by every branch of the organization; otherwise it is
    visible only in that branch.

    LEGACY QUANTITY:
    Item.quantity is a decommissioned "current quantity" field. Stock on a
    given day is only ever derived from the date-keyed opening/closing ledger.
    The ledger engine never reads it for arithmetic and never writes it.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_org_branch_name", "organization_id", "branch_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False, default="unit")
    description = db.Column(db.Text, nullable=True)

    cost_price = db.Column(MONEY, nullable=True)
    selling_price = db.Column(MONEY, nullable=True)

    # Deprecated: see class docstring
    quantity = db.Column(QUANTITY, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r} org={self.organization_id} branch={self.branch_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "branch_id": self.branch_id,
            "name": self.name,
            "unit": self.unit,
            "description": self.description,
            "cost_price": _dec(self.cost_price),
            "selling_price": _dec(self.selling_price),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OpeningStock(db.Model):
    """
    Opening quantity of one item on one day, in one scope.

    Natural key: (item_id, date, organization_id, branch_id).

    source:
    - MANUAL: hand-entered (historical correction or first stock take).
      Propagation never overwrites it.
    - AUTO: derived from the previous day's closing; overwritten whenever the
      previous day is re-closed.
    """
    __tablename__ = "opening_stock"
    __table_args__ = (
        db.UniqueConstraint(
            "item_id", "date", "organization_id", "branch_id",
            name="uq_opening_stock_natural_key",
        ),
        db.Index("ix_opening_stock_scope_date", "organization_id", "branch_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    date = db.Column(db.Date, nullable=False, index=True)

    quantity = db.Column(QUANTITY, nullable=False, default=0)
    cost_price = db.Column(MONEY, nullable=True)
    selling_price = db.Column(MONEY, nullable=True)

    source = db.Column(db.String(16), nullable=False, default=SOURCE_AUTO)

    recorded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    item = db.relationship("Item")

    @property
    def is_manual(self) -> bool:
        return self.source == SOURCE_MANUAL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "organization_id": self.organization_id,
            "branch_id": self.branch_id,
            "date": to_iso_date(self.date),
            "quantity": _dec(self.quantity),
            "cost_price": _dec(self.cost_price),
            "selling_price": _dec(self.selling_price),
            "source": self.source,
            "recorded_by": self.recorded_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ClosingStock(db.Model):
    """
    Closing quantity of one item on one day, in one scope.

    AUTO rows are derived by the day closer:
        quantity = max(0, opening + restocking - sales - waste)
    and re-closing a day overwrites the row in place (upsert on the natural key).

    MANUAL rows are hand counts; the day closer keeps them and the cascade
    propagates them forward as the settled closing of that day.
    """
    __tablename__ = "closing_stock"
    __table_args__ = (
        db.UniqueConstraint(
            "item_id", "date", "organization_id", "branch_id",
            name="uq_closing_stock_natural_key",
        ),
        db.Index("ix_closing_stock_scope_date", "organization_id", "branch_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    date = db.Column(db.Date, nullable=False, index=True)

    quantity = db.Column(QUANTITY, nullable=False, default=0)

    source = db.Column(db.String(16), nullable=False, default=SOURCE_AUTO)

    recorded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    item = db.relationship("Item")

    @property
    def is_manual(self) -> bool:
        return self.source == SOURCE_MANUAL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "organization_id": self.organization_id,
            "branch_id": self.branch_id,
            "date": to_iso_date(self.date),
            "quantity": _dec(self.quantity),
            "source": self.source,
            "recorded_by": self.recorded_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Restocking(db.Model):
    """Stock added to an item on a day. Each delivery is its own row."""
    __tablename__ = "restocking"
    __table_args__ = (
        db.Index("ix_restocking_scope_item_date", "organization_id", "branch_id", "item_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    date = db.Column(db.Date, nullable=False, index=True)

    quantity = db.Column(QUANTITY, nullable=False)
    cost_price = db.Column(MONEY, nullable=True)
    selling_price = db.Column(MONEY, nullable=True)

    recorded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "organization_id": self.organization_id,
            "branch_id": self.branch_id,
            "date": to_iso_date(self.date),
            "quantity": _dec(self.quantity),
            "cost_price": _dec(self.cost_price),
            "selling_price": _dec(self.selling_price),
            "recorded_by": self.recorded_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class Sale(db.Model):
    """
    Quantity of an item sold on a day.

    Sales never touch Item.quantity. Editing or deleting a sale for a past
    date re-closes the owning day and cascades forward.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_scope_item_date", "organization_id", "branch_id", "item_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    date = db.Column(db.Date, nullable=False, index=True)

    quantity = db.Column(QUANTITY, nullable=False)
    price_per_unit = db.Column(MONEY, nullable=False, default=0)
    total_price = db.Column(MONEY, nullable=False, default=0)
    payment_mode = db.Column(db.String(16), nullable=False, default="cash")
    description = db.Column(db.Text, nullable=True)

    recorded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "organization_id": self.organization_id,
            "branch_id": self.branch_id,
            "date": to_iso_date(self.date),
            "quantity": _dec(self.quantity),
            "price_per_unit": _dec(self.price_per_unit),
            "total_price": _dec(self.total_price),
            "payment_mode": self.payment_mode,
            "description": self.description,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class WasteSpoilage(db.Model):
    """Stock lost to waste or spoilage on a day."""
    __tablename__ = "waste_spoilage"
    __table_args__ = (
        db.Index("ix_waste_spoilage_scope_item_date", "organization_id", "branch_id", "item_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    date = db.Column(db.Date, nullable=False, index=True)

    quantity = db.Column(QUANTITY, nullable=False)
    reason = db.Column(db.String(64), nullable=True)

    recorded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "organization_id": self.organization_id,
            "branch_id": self.branch_id,
            "date": to_iso_date(self.date),
            "quantity": _dec(self.quantity),
            "reason": self.reason,
            "recorded_by": self.recorded_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
