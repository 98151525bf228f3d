from types import SimpleNamespace

import pytest

from studenthub.services.policy import AuthorizationPolicy, ActivityContext


def actor(role, id=1, department='Computer Science', is_active=True):
    return SimpleNamespace(role=role, id=id, department=department, is_active=is_active)


def activity(owner_id=10, department='Computer Science', status='pending', approver_id=None):
    return ActivityContext(owner_id=owner_id, owner_department=department, status=status, approver_id=approver_id)


class TestAuthorizationPolicy:
    def setup_method(self):
        self.policy = AuthorizationPolicy(restrict_faculty_approval=True)

    def test_admin_is_always_allowed(self):
        admin = actor('admin', department=None)
        for action in ('view', 'create', 'edit', 'delete', 'approve', 'comment', 'share'):
            assert self.policy.allowed(admin, action, activity(status='approved'))

    def test_only_students_create(self):
        assert self.policy.allowed(actor('student'), 'create')
        assert not self.policy.allowed(actor('faculty'), 'create')

    def test_student_owner_rights(self):
        owner = actor('student', id=10)
        ctx = activity(owner_id=10)
        assert self.policy.allowed(owner, 'view', ctx)
        assert self.policy.allowed(owner, 'edit', ctx)
        assert self.policy.allowed(owner, 'comment', ctx)
        assert self.policy.allowed(owner, 'share', ctx)
        assert self.policy.allowed(owner, 'delete', ctx)
        assert not self.policy.allowed(owner, 'approve', ctx)

    def test_student_cannot_delete_approved(self):
        owner = actor('student', id=10)
        assert not self.policy.allowed(owner, 'delete', activity(owner_id=10, status='approved'))
        # Editing stays allowed and sends the activity back to review
        assert self.policy.allowed(owner, 'edit', activity(owner_id=10, status='approved'))

    def test_student_sees_nothing_of_others(self):
        other = actor('student', id=11)
        ctx = activity(owner_id=10)
        for action in ('view', 'edit', 'delete', 'comment', 'share', 'approve'):
            assert not self.policy.allowed(other, action, ctx)

    def test_faculty_department_scope(self):
        faculty = actor('faculty', id=2)
        assert self.policy.allowed(faculty, 'view', activity())
        assert self.policy.allowed(faculty, 'comment', activity())
        assert self.policy.allowed(faculty, 'approve', activity())
        assert not self.policy.allowed(faculty, 'edit', activity())
        assert not self.policy.allowed(faculty, 'delete', activity())
        assert not self.policy.allowed(faculty, 'share', activity())

    def test_faculty_other_department_only_via_approver(self):
        faculty = actor('faculty', id=2, department='Physics')
        ctx = activity(department='Chemistry')
        assert not self.policy.allowed(faculty, 'view', ctx)
        approved_by_them = activity(department='Chemistry', status='approved', approver_id=2)
        assert self.policy.allowed(faculty, 'view', approved_by_them)

    def test_approve_requires_pending(self):
        faculty = actor('faculty', id=2)
        assert not self.policy.allowed(faculty, 'approve', activity(status='approved'))
        assert not self.policy.allowed(faculty, 'approve', activity(status='rejected'))

    def test_unrestricted_faculty_may_decide_any_department(self):
        policy = AuthorizationPolicy(restrict_faculty_approval=False)
        faculty = actor('faculty', id=2, department='Physics')
        assert policy.allowed(faculty, 'approve', activity(department='Chemistry'))
        assert not self.policy.allowed(faculty, 'approve', activity(department='Chemistry'))

    def test_inactive_actor_is_denied(self):
        assert not self.policy.allowed(actor('admin', is_active=False), 'view', activity())

    def test_unknown_action(self):
        with pytest.raises(ValueError):
            self.policy.allowed(actor('admin'), 'publish', activity())

    def test_permissions_map(self):
        perms = self.policy.permissions(actor('student', id=10), activity(owner_id=10, status='approved'))
        assert perms['view'] is True
        assert perms['delete'] is False
