"""
Negotiation Models: proposal ledger and completed-contract snapshot.

Proposal rows are append-only: the ledger assigns ``sequence_number`` at
insert time and nothing updates a row afterwards except the
``is_final_submitted`` flag set by final-quote submission.

NegotiationSnapshot holds at most one row per request key and is upserted
by the completion workflow.
"""

from datetime import datetime, timezone

from procurement_desk.models import db

SNAPSHOT_STATUSES = ("completed", "final_quote_submitted")

_MONEY = db.Numeric(14, 2)


class Proposal(db.Model):
    """One priced offer in a negotiation."""

    __tablename__ = "proposals"

    id = db.Column(db.Integer, primary_key=True)
    request_key = db.Column(db.String(64), nullable=False, index=True)
    sequence_number = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(_MONEY, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    total = db.Column(_MONEY, nullable=False)
    note = db.Column(db.Text)
    is_final = db.Column(db.Boolean, nullable=False, default=False)
    is_final_submitted = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("request_key", "sequence_number", name="uq_proposal_request_sequence"),
        db.CheckConstraint("sequence_number >= 1", name="ck_proposal_sequence_positive"),
        db.CheckConstraint("quantity > 0", name="ck_proposal_quantity_positive"),
    )

    @property
    def proposal_type(self) -> str:
        return "FINAL" if self.is_final else f"PROPOSAL {self.sequence_number}"

    def to_dict(self):
        return {
            "id": self.id,
            "request_key": self.request_key,
            "sequence_number": self.sequence_number,
            "proposal_type": self.proposal_type,
            "unit_price": str(self.unit_price) if self.unit_price is not None else None,
            "quantity": self.quantity,
            "total": str(self.total) if self.total is not None else None,
            "note": self.note,
            "is_final": self.is_final,
            "is_final_submitted": self.is_final_submitted,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Proposal {self.request_key}#{self.sequence_number} total={self.total}>"


class NegotiationSnapshot(db.Model):
    """Completed-contract record derived from a request at completion time."""

    __tablename__ = "negotiation_snapshots"

    id = db.Column(db.Integer, primary_key=True)
    request_key = db.Column(db.String(64), nullable=False, unique=True)

    vendor_name = db.Column(db.String(200), nullable=False, index=True)
    product_name = db.Column(db.String(200), nullable=False)

    requester_name = db.Column(db.String(200))
    requester_email = db.Column(db.String(200), index=True)
    requester_department_id = db.Column(db.Integer, nullable=True)
    requester_organization_id = db.Column(db.Integer, nullable=True)

    current_license_count = db.Column(db.Integer)
    new_license_count = db.Column(db.Integer)
    current_usage_count = db.Column(db.Integer)
    new_usage_count = db.Column(db.Integer)
    current_units = db.Column(db.String(50))
    new_units = db.Column(db.String(50))

    vendor_contract_type = db.Column(db.String(100))
    license_update_type = db.Column(db.String(100))
    existing_contract_id = db.Column(db.String(100))
    billing_type = db.Column(db.String(100))

    contract_duration_months = db.Column(db.Integer)
    due_date = db.Column(db.Date)
    renewal_date = db.Column(db.Date)
    contract_start_date = db.Column(db.Date)
    contract_end_date = db.Column(db.Date)

    profit = db.Column(_MONEY, nullable=False, default=0)
    comment = db.Column(db.Text)
    status = db.Column(db.String(30), nullable=False, default="completed")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN (" + ",".join(f"'{s}'" for s in SNAPSHOT_STATUSES) + ")",
            name="ck_snapshot_status",
        ),
    )

    def to_dict(self):
        def _d(v):
            return v.isoformat() if v else None

        return {
            "id": self.id,
            "request_key": self.request_key,
            "vendor_name": self.vendor_name,
            "product_name": self.product_name,
            "requester_name": self.requester_name,
            "requester_email": self.requester_email,
            "requester_department_id": self.requester_department_id,
            "requester_organization_id": self.requester_organization_id,
            "current_license_count": self.current_license_count,
            "new_license_count": self.new_license_count,
            "current_usage_count": self.current_usage_count,
            "new_usage_count": self.new_usage_count,
            "current_units": self.current_units,
            "new_units": self.new_units,
            "vendor_contract_type": self.vendor_contract_type,
            "license_update_type": self.license_update_type,
            "existing_contract_id": self.existing_contract_id,
            "billing_type": self.billing_type,
            "contract_duration_months": self.contract_duration_months,
            "due_date": _d(self.due_date),
            "renewal_date": _d(self.renewal_date),
            "contract_start_date": _d(self.contract_start_date),
            "contract_end_date": _d(self.contract_end_date),
            "profit": str(self.profit) if self.profit is not None else None,
            "comment": self.comment,
            "status": self.status,
            "created_at": _d(self.created_at),
            "updated_at": _d(self.updated_at),
        }

    def __repr__(self):
        return f"<NegotiationSnapshot {self.request_key} [{self.status}]>"
