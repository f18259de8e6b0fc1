"""
Tests for the task status state machine and role permissions.
"""

import pytest

from intake.features.workflow.domain.errors import InvalidTransitionError
from intake.features.workflow.domain.transitions import (
    TRANSITIONS,
    allowed_transitions,
    can_create_task,
    can_edit_task,
    can_view_audit_log,
    can_view_task,
    ordered_transitions,
    validate_transition,
)
from intake.models.domain.task_domain import TaskStatus as S
from intake.models.domain.task_domain import UserRole as R


class TestAllowedTransitions:
    @pytest.mark.parametrize(
        "current,role,expected",
        [
            (S.NEW, R.SuperAdmin, {S.TRIAGE, S.ASSIGNED, S.DONE}),
            (S.NEW, R.WarehouseManager, {S.TRIAGE, S.ASSIGNED}),
            (S.ASSIGNED, R.Editor, {S.IN_PROGRESS}),
            (S.IN_PROGRESS, R.Editor, {S.READY_FOR_REVIEW, S.ASSIGNED}),
            (S.READY_FOR_REVIEW, R.SuperAdmin, {S.PUBLISHED, S.IN_PROGRESS, S.QA_APPROVED}),
            (S.READY_FOR_REVIEW, R.Auditor, {S.IN_PROGRESS}),
            (S.PUBLISHED, R.Auditor, {S.QA_APPROVED, S.READY_FOR_REVIEW}),
            (S.PUBLISHED, R.WarehouseManager, {S.QA_APPROVED}),
            (S.QA_APPROVED, R.SuperAdmin, {S.DONE, S.PUBLISHED}),
            (S.QA_APPROVED, R.Auditor, {S.DONE}),
        ],
    )
    def test_table_entries(self, current, role, expected):
        assert allowed_transitions(current, role) == frozenset(expected)

    @pytest.mark.parametrize(
        "current,role",
        [
            (S.NEW, R.Editor),
            (S.NEW, R.Auditor),
            (S.TRIAGE, R.Editor),
            (S.READY_FOR_REVIEW, R.Editor),
            (S.QA_APPROVED, R.WarehouseManager),
            (S.ASSIGNED, R.Auditor),
        ],
    )
    def test_unlisted_pairs_are_empty(self, current, role):
        assert allowed_transitions(current, role) == frozenset()

    @pytest.mark.parametrize("role", list(R))
    def test_done_is_terminal(self, role):
        assert allowed_transitions(S.DONE, role) == frozenset()

    def test_every_status_has_a_row(self):
        assert set(TRANSITIONS) == set(S)

    def test_no_self_transitions(self):
        for current, by_role in TRANSITIONS.items():
            for targets in by_role.values():
                assert current not in targets

    def test_ordered_transitions_follow_pipeline(self):
        assert ordered_transitions(S.READY_FOR_REVIEW, R.SuperAdmin) == [
            S.IN_PROGRESS,
            S.PUBLISHED,
            S.QA_APPROVED,
        ]


class TestValidateTransition:
    def test_allowed_move_passes(self):
        validate_transition(S.NEW, S.TRIAGE, R.WarehouseManager)

    def test_rejection_carries_context(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition(S.IN_PROGRESS, S.PUBLISHED, R.WarehouseManager)

        error = exc_info.value
        assert error.current_status == S.IN_PROGRESS
        assert error.attempted_status == S.PUBLISHED
        assert error.valid_transitions == [S.ASSIGNED, S.READY_FOR_REVIEW]

    def test_payload_uses_api_field_names(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition(S.NEW, S.DONE, R.Editor)

        assert exc_info.value.to_payload() == {
            "message": "Invalid status transition",
            "currentStatus": "NEW",
            "attemptedStatus": "DONE",
            "validTransitions": [],
        }


class TestPermissions:
    @pytest.mark.parametrize("role", [R.SuperAdmin, R.WarehouseManager])
    def test_managers_can_edit_any_task(self, role):
        assert can_edit_task(role, None, "someone")
        assert can_edit_task(role, "other-user", "someone")

    def test_editor_can_edit_only_own_assignment(self):
        assert can_edit_task(R.Editor, "editor-1", "editor-1")
        assert not can_edit_task(R.Editor, "editor-2", "editor-1")
        assert not can_edit_task(R.Editor, None, "editor-1")

    def test_auditor_cannot_edit(self):
        assert not can_edit_task(R.Auditor, "auditor-1", "auditor-1")

    def test_editor_view_scope(self):
        assert can_view_task(R.Editor, "editor-1", "editor-1")
        assert not can_view_task(R.Editor, "editor-2", "editor-1")
        assert can_view_task(R.Auditor, "editor-2", "auditor-1")

    def test_audit_log_roles(self):
        assert can_view_audit_log(R.SuperAdmin)
        assert can_view_audit_log(R.Auditor)
        assert not can_view_audit_log(R.WarehouseManager)
        assert not can_view_audit_log(R.Editor)

    def test_auditors_cannot_create(self):
        assert not can_create_task(R.Auditor)
        assert can_create_task(R.Editor)
