"""
Audit trail for appointment lifecycle transitions and account provisioning.
One row per committed change; details holds the changed values as JSON.
"""
import json
from datetime import datetime

from app.extensions import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(64), nullable=False)  # appointment, user
    entity_id = db.Column(db.String(64), nullable=True)
    action = db.Column(db.String(32), nullable=False, index=True)  # create, assign_doctor, cancel, provision, ...
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    details = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    actor = db.relationship("User", foreign_keys=[user_id], lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "actor": self.actor.username if self.actor else None,
            "details": json.loads(self.details) if self.details else {},
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.entity_type}/{self.entity_id} {self.action}>"
