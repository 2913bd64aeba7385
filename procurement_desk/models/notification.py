"""
Procurement Desk
Notification domain model.

A row with all four recipient columns NULL is a global broadcast. Any
non-NULL recipient column narrows visibility; see
services.visibility.notification_filter.
"""

from datetime import datetime, timezone

from procurement_desk.models import db


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient scope per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    request_key = db.Column(db.String(64), index=True)

    # Recipient scope (all NULL → broadcast)
    recipient_user_id = db.Column(db.Integer, nullable=True, index=True)
    recipient_role = db.Column(db.String(30), nullable=True)
    recipient_department_id = db.Column(db.Integer, nullable=True)
    recipient_organization_id = db.Column(db.Integer, nullable=True)

    sender_user_id = db.Column(db.Integer, nullable=True)
    sender_name = db.Column(db.String(200))

    # Transition events only
    from_status = db.Column(db.String(100))
    to_status = db.Column(db.String(100))

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)

    @property
    def is_broadcast(self) -> bool:
        return (
            self.recipient_user_id is None
            and self.recipient_role is None
            and self.recipient_department_id is None
            and self.recipient_organization_id is None
        )

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "request_key": self.request_key,
            "recipient_user_id": self.recipient_user_id,
            "recipient_role": self.recipient_role,
            "recipient_department_id": self.recipient_department_id,
            "recipient_organization_id": self.recipient_organization_id,
            "sender_user_id": self.sender_user_id,
            "sender_name": self.sender_name,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
