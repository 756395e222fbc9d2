"""
Scope resolution: actor -> (organization_id, branch_id).

Every ledger read and write is partitioned by a Scope. The scope is derived
from the acting user, never taken verbatim from client input:

- Fixed-branch actors (staff, or an admin pinned to a branch) always work in
  their own branch. Requesting another branch is rejected.
- Tenant admins (role admin, no branch) work in the organization-level
  partition (branch_id NULL) unless they request a branch, which must belong
  to their organization.

A NULL branch_id is its own partition. It is matched with IS NULL and never
means "all branches".

USAGE:
    scope = resolve_scope(actor_id, requested_branch_id=payload.get("branch_id"))
    rows = scoped_query(db.session.query(Sale), Sale, scope).all()
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Branch, Item, Organization, User
from stockledger.time_utils import business_today


class ScopeResolutionError(Exception):
    """Raised when an actor cannot be mapped to a valid scope."""
    pass


@dataclass(frozen=True)
class Scope:
    organization_id: int
    branch_id: int | None = None

    def to_dict(self) -> dict:
        return {"organization_id": self.organization_id, "branch_id": self.branch_id}


def get_actor(actor_id: int | None) -> User:
    if actor_id is None:
        raise ScopeResolutionError("Actor is required")
    user = db.session.query(User).filter_by(id=actor_id).first()
    if not user or not user.is_active:
        raise ScopeResolutionError("Actor not found or inactive")
    return user


def require_branch_in_org(branch_id: int, org_id: int) -> Branch:
    """
    Validate that a branch belongs to the specified organization.

    Branches of other organizations are reported as not found so their
    existence is not revealed.
    """
    branch = db.session.query(Branch).filter_by(id=branch_id).first()
    if not branch or branch.org_id != org_id:
        raise ScopeResolutionError("Branch not found")
    if not branch.is_active:
        raise ScopeResolutionError("Branch is inactive")
    return branch


def resolve_scope(actor_id: int | None, requested_branch_id: int | None = None) -> Scope:
    user = get_actor(actor_id)

    org = db.session.query(Organization).filter_by(id=user.org_id).first()
    if not org or not org.is_active:
        raise ScopeResolutionError("Organization not found or inactive")

    if user.is_tenant_admin:
        if requested_branch_id is None:
            return Scope(organization_id=org.id, branch_id=None)
        branch = require_branch_in_org(requested_branch_id, org.id)
        return Scope(organization_id=org.id, branch_id=branch.id)

    if requested_branch_id is not None and requested_branch_id != user.branch_id:
        raise ScopeResolutionError("Actor is not assigned to the requested branch")

    if user.branch_id is None:
        raise ScopeResolutionError("Actor has no branch assignment")

    require_branch_in_org(user.branch_id, org.id)
    return Scope(organization_id=org.id, branch_id=user.branch_id)


def scoped_query(query, model, scope: Scope):
    """Restrict a query on a ledger model to one scope partition."""
    query = query.filter(model.organization_id == scope.organization_id)
    if scope.branch_id is None:
        return query.filter(model.branch_id.is_(None))
    return query.filter(model.branch_id == scope.branch_id)


def visible_items_query(scope: Scope, *, include_inactive: bool = False):
    """
    Items visible in a scope: organization-wide items plus the scope's own
    branch items.
    """
    q = db.session.query(Item).filter(Item.organization_id == scope.organization_id)
    if scope.branch_id is None:
        q = q.filter(Item.branch_id.is_(None))
    else:
        q = q.filter(db.or_(Item.branch_id.is_(None), Item.branch_id == scope.branch_id))
    if not include_inactive:
        q = q.filter(Item.is_active.is_(True))
    return q


def organization_today(organization_id: int) -> date:
    """Today's date on the organization's calendar."""
    org = db.session.query(Organization).filter_by(id=organization_id).first()
    tz_name = org.timezone if org and org.timezone else current_app.config.get("LEDGER_DEFAULT_TIMEZONE", "UTC")
    return business_today(tz_name)
