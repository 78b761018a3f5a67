from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class ActivityLog(db.Model):
    """
    Append-only activity log.

    WHY: Every privileged write (and every approval submission/decision) is
    attributable to a user, a branch and an entity. Rows are never updated.
    """
    __tablename__ = "activity_log"
    __table_args__ = (
        db.Index("ix_activity_log_branch_time", "branch_id", "created_at"),
        db.Index("ix_activity_log_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(120), nullable=True)
    action = db.Column(db.String(32), nullable=False)
    context_json = db.Column(db.JSON, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "context": self.context_json,
            "ip_address": self.ip_address,
            "created_at": to_utc_z(self.created_at),
        }
