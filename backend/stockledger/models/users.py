from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z

ROLE_ADMIN = "admin"
ROLE_STAFF = "staff"
USER_ROLES = (ROLE_ADMIN, ROLE_STAFF)


class User(db.Model):
    """
    Actor record used for ledger attribution and scope resolution.

    Credentials live with the upstream identity provider; this table only
    carries what the ledger needs to know about an actor.

    SCOPE:
    - admin with branch_id NULL: tenant admin, may work on any branch of the
      organization (or on the organization-level partition)
    - admin with branch_id set, or staff: fixed to that branch
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_org_id", "org_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    email = db.Column(db.String(255), nullable=False, unique=True)
    full_name = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(16), nullable=False, default=ROLE_STAFF)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("users", lazy=True))
    branch = db.relationship("Branch", backref=db.backref("users", lazy=True))

    @property
    def is_tenant_admin(self) -> bool:
        return self.role == ROLE_ADMIN and self.branch_id is None

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "branch_id": self.branch_id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
