"""
Directory Models: organizations, departments, users.

Users are mirrored from the identity provider (``external_uid`` holds the
provider's uid). The negotiation core only reads them: requester lookup by
email when a request completes, and principal resolution for visibility.
"""

from datetime import datetime, timezone

from procurement_desk.models import db


class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    departments = db.relationship("Department", back_populates="organization", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Organization {self.id}: {self.name}>"


class Department(db.Model):
    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("organization_id", "name", name="uq_department_org_name"),
    )

    organization = db.relationship("Organization", back_populates="departments")

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
        }

    def __repr__(self):
        return f"<Department {self.id}: {self.name}>"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    external_uid = db.Column(db.String(128), unique=True)  # identity-provider uid
    email = db.Column(db.String(200), nullable=False, unique=True)
    display_name = db.Column(db.String(200))
    role = db.Column(db.String(30), nullable=False, default="REQUESTER")
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    organization = db.relationship("Organization")
    department = db.relationship("Department")

    def to_dict(self):
        return {
            "id": self.id,
            "external_uid": self.external_uid,
            "email": self.email,
            "display_name": self.display_name,
            "role": self.role,
            "organization_id": self.organization_id,
            "department_id": self.department_id,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
