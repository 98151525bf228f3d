"""
Authorization rules for activities.

Pure functions of (actor, ActivityContext); nothing here touches the database
or raises. Callers turn a False into the right HTTP outcome.
"""
from dataclasses import dataclass
from typing import Optional

from studenthub.models import APPROVED, PENDING

ACTIONS = ('view', 'create', 'edit', 'delete', 'approve', 'comment', 'share')


@dataclass(frozen=True)
class ActivityContext:
    owner_id: Optional[int]
    owner_department: Optional[str]
    status: Optional[str]
    approver_id: Optional[int] = None

    @classmethod
    def of(cls, activity):
        return cls(
            owner_id=activity.student_id,
            owner_department=activity.owner_department,
            status=activity.status,
            approver_id=activity.approved_by_id,
        )


class AuthorizationPolicy:
    def __init__(self, restrict_faculty_approval=True):
        self.restrict_faculty_approval = restrict_faculty_approval

    def allowed(self, actor, action, resource=None) -> bool:
        if action not in ACTIONS:
            raise ValueError(f'Unknown action: {action}')
        if actor is None or not actor.is_active:
            return False
        if actor.role == 'admin':
            return True
        if action == 'create':
            return actor.role == 'student'
        if resource is None:
            return False
        return getattr(self, f'_can_{action}')(actor, resource)

    def permissions(self, actor, resource):
        return {action: self.allowed(actor, action, resource) for action in ACTIONS}

    def can_decide(self, actor, resource) -> bool:
        """Approve/reject rights ignoring the current status."""
        if actor.role == 'admin':
            return True
        if actor.role != 'faculty':
            return False
        if not self.restrict_faculty_approval:
            return True
        return self._same_department(actor, resource)

    # --- per-action rules ---

    def _can_view(self, actor, resource):
        if actor.role == 'student':
            return self._is_owner(actor, resource)
        if actor.role == 'faculty':
            return self._same_department(actor, resource) or resource.approver_id == actor.id
        return False

    _can_comment = _can_view

    def _can_edit(self, actor, resource):
        # Owner edits of decided activities route back to pending.
        return actor.role == 'student' and self._is_owner(actor, resource)

    def _can_delete(self, actor, resource):
        return (
            actor.role == 'student'
            and self._is_owner(actor, resource)
            and resource.status != APPROVED
        )

    def _can_approve(self, actor, resource):
        return resource.status == PENDING and self.can_decide(actor, resource)

    def _can_share(self, actor, resource):
        return actor.role == 'student' and self._is_owner(actor, resource)

    @staticmethod
    def _is_owner(actor, resource):
        return resource.owner_id is not None and resource.owner_id == actor.id

    @staticmethod
    def _same_department(actor, resource):
        return bool(actor.department) and actor.department == resource.owner_department
