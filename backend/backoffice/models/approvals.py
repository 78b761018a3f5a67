from __future__ import annotations

import sqlalchemy as sa

from ..extensions import db
from backoffice.time_utils import to_utc_z


APPROVAL_STATUSES = ("PENDING", "APPROVED", "REJECTED")


class ApprovalPolicy(db.Model):
    """
    Which (entity_type, entity_key, action) writes must be queued for review.

    entity_type is "SCREEN" for screen-level policies; entity_key is the
    screen scope key (e.g. "master_data.products.skus").
    """
    __tablename__ = "approval_policy"
    __table_args__ = (
        db.UniqueConstraint("entity_type", "entity_key", "action", name="uq_approval_policy"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_key = db.Column(db.String(120), nullable=False)
    action = db.Column(db.String(32), nullable=False)
    requires_approval = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def key(self) -> str:
        return f"{self.entity_type}:{self.entity_key}:{self.action}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "entity_type": self.entity_type,
            "entity_key": self.entity_key,
            "action": self.action,
            "requires_approval": self.requires_approval,
            "updated_at": to_utc_z(self.updated_at),
        }


class ApprovalRequest(db.Model):
    """
    Durable record of an intercepted privileged write.

    STATE MACHINE: PENDING -> APPROVED | PENDING -> REJECTED.
    Immutable after decision except for status/decided_by/decided_at.

    entity_id is text so numeric ids, "NEW" and composite keys share one column.
    old_value/new_value are JSON snapshots sufficient to replay the write.
    """
    __tablename__ = "approval_request"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_approval_request_status",
        ),
        db.Index("ix_approval_request_status_requested", "status", "requested_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    request_type = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(120), nullable=False)
    summary = db.Column(db.Text, nullable=True)
    old_value = db.Column(db.JSON, nullable=True)
    new_value = db.Column(db.JSON, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING", server_default="PENDING")

    requested_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    decided_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decision_notes = db.Column(db.Text, nullable=True)

    requester = db.relationship("User", foreign_keys=[requested_by])
    decider = db.relationship("User", foreign_keys=[decided_by])
    branch = db.relationship("Branch")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "request_type": self.request_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "summary": self.summary,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "status": self.status,
            "requested_by": self.requested_by,
            "requested_by_name": self.requester.username if self.requester else None,
            "requested_at": to_utc_z(self.requested_at),
            "decided_by": self.decided_by,
            "decided_at": to_utc_z(self.decided_at),
            "decision_notes": self.decision_notes,
        }
