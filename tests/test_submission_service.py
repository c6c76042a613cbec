"""
SubmissionLifecycleManager tests — creation with artifacts, status workflow,
author-only deletion and the storage failure paths.
"""

import os
from io import BytesIO

import pytest
from sqlalchemy.exc import OperationalError
from werkzeug.datastructures import FileStorage

from codereview.core.exceptions import (
    InvalidStatusError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    StorageError,
    ValidationError,
)
from codereview.models.roles import ProjectRole
from codereview.models.submission import SUBMISSION_STATUSES, Submission, SubmissionStatus
from codereview.services.project_service import ProjectMembershipManager
from codereview.services.storage import LocalArtifactStorage
from codereview.services.submission_service import SubmissionLifecycleManager


class FailingPromoteStorage(LocalArtifactStorage):
    """Staging works, permanent storage is unavailable."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.discarded = []

    def promote(self, staged):
        raise StorageError("disk full")

    def discard(self, staged):
        self.discarded.append(staged)
        super().discard(staged)


class FailingDeleteStorage(LocalArtifactStorage):
    def delete(self, public_path):
        raise StorageError("permission denied")


class RecordingStorage(LocalArtifactStorage):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.promoted = []

    def promote(self, staged):
        path = super().promote(staged)
        self.promoted.append(path)
        return path


def _upload(name="solution.py", body=b"print('hello')\n", content_type="text/x-python"):
    return FileStorage(BytesIO(body), filename=name, content_type=content_type)


@pytest.fixture()
def roots(app):
    return app.config["UPLOAD_FOLDER"], app.config["UPLOAD_STAGING_FOLDER"]


@pytest.fixture()
def memberships(session, storage):
    return ProjectMembershipManager(session, storage)


@pytest.fixture()
def lifecycle(session, storage, memberships):
    return SubmissionLifecycleManager(session, storage, memberships)


@pytest.fixture()
def team(make_user, memberships):
    """Project with an admin creator, a reviewer, a submitter and an outsider."""
    admin = make_user(email="admin@acme.io")
    reviewer = make_user(email="reviewer@acme.io")
    submitter = make_user(email="submitter@acme.io")
    outsider = make_user(email="outsider@acme.io")
    project = memberships.create_project("Review me", owner_user_id=admin.id)
    memberships.add_member(project.id, admin.id, reviewer.id, ProjectRole.REVIEWER)
    memberships.add_member(project.id, admin.id, submitter.id, ProjectRole.SUBMITTER)
    return {
        "project": project,
        "admin": admin,
        "reviewer": reviewer,
        "submitter": submitter,
        "outsider": outsider,
    }


# ═══════════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════════

class TestCreate:
    def test_without_file_has_no_artifact(self, lifecycle, team):
        s = lifecycle.create_submission(team["project"].id, team["submitter"].id, "Fix parser", "Handles EOF")
        assert s.status is SubmissionStatus.PENDING
        assert (s.file_path, s.file_name, s.file_type) == (None, None, None)
        assert s.has_artifact is False

    def test_with_file_has_full_artifact(self, lifecycle, storage, team):
        staged = storage.stage(_upload())
        s = lifecycle.create_submission(team["project"].id, team["submitter"].id, "Solution", artifact=staged)

        assert s.file_name == "solution.py"
        assert s.file_type == "text/x-python"
        assert s.file_path.startswith("/uploads/submissions/")
        stored_name = os.path.basename(s.file_path)
        assert stored_name != "solution.py"
        assert stored_name.endswith(".py")
        with open(storage.resolve(s.file_path), "rb") as fh:
            assert fh.read() == b"print('hello')\n"
        assert not os.path.exists(staged.staging_path)

    def test_same_upload_name_never_collides(self, lifecycle, storage, team):
        a = lifecycle.create_submission(team["project"].id, team["admin"].id, "A", artifact=storage.stage(_upload()))
        b = lifecycle.create_submission(team["project"].id, team["admin"].id, "B", artifact=storage.stage(_upload()))
        assert a.file_path != b.file_path

    @pytest.mark.parametrize("name, ext", [
        ("файл.py", ".py"),
        ("Main.JAVA", ".java"),
        ("README", ""),
        ("bad.p y", ""),
    ])
    def test_stored_extension_comes_from_original_name(self, lifecycle, storage, team, name, ext):
        s = lifecycle.create_submission(
            team["project"].id, team["submitter"].id, "Named", artifact=storage.stage(_upload(name=name)),
        )
        assert s.file_name == name
        stem, stored_ext = os.path.splitext(os.path.basename(s.file_path))
        assert stored_ext == ext
        assert len(stem) == 36

    def test_non_member_forbidden(self, lifecycle, storage, team):
        staged = storage.stage(_upload())
        with pytest.raises(PermissionDeniedError):
            lifecycle.create_submission(team["project"].id, team["outsider"].id, "Sneaky", artifact=staged)
        assert Submission.query.count() == 0
        assert not os.path.exists(staged.staging_path)

    def test_missing_project(self, lifecycle, team):
        with pytest.raises(NotFoundError):
            lifecycle.create_submission("nope", team["admin"].id, "Lost")

    def test_blank_title_rejected(self, lifecycle, team):
        with pytest.raises(ValidationError) as exc:
            lifecycle.create_submission(team["project"].id, team["admin"].id, "   ")
        assert "title" in exc.value.details

    def test_promotion_failure_creates_no_row(self, session, memberships, roots, team):
        storage = FailingPromoteStorage(*roots)
        lifecycle = SubmissionLifecycleManager(session, storage, memberships)
        staged = storage.stage(_upload())

        with pytest.raises(StorageError):
            lifecycle.create_submission(team["project"].id, team["submitter"].id, "Doomed", artifact=staged)

        assert Submission.query.count() == 0
        assert storage.discarded == [staged]

    def test_insert_failure_removes_promoted_blob(self, session, memberships, roots, team, monkeypatch):
        storage = RecordingStorage(*roots)
        lifecycle = SubmissionLifecycleManager(session, storage, memberships)
        staged = storage.stage(_upload())

        def broken_commit():
            raise OperationalError("INSERT INTO submissions", {}, Exception("database is locked"))

        monkeypatch.setattr(session, "commit", broken_commit)
        with pytest.raises(PersistenceError):
            lifecycle.create_submission(team["project"].id, team["submitter"].id, "Unlucky", artifact=staged)
        monkeypatch.undo()

        assert len(storage.promoted) == 1
        assert not os.path.exists(storage.resolve(storage.promoted[0]))
        assert Submission.query.count() == 0


# ═══════════════════════════════════════════════════════════════
# Read
# ═══════════════════════════════════════════════════════════════

class TestRead:
    def test_list_newest_first(self, lifecycle, team):
        pid = team["project"].id
        first = lifecycle.create_submission(pid, team["submitter"].id, "First")
        second = lifecycle.create_submission(pid, team["submitter"].id, "Second")
        assert [s.id for s in lifecycle.list_by_project(pid, team["reviewer"].id)] == [second.id, first.id]

    def test_list_requires_membership(self, lifecycle, team):
        with pytest.raises(PermissionDeniedError):
            lifecycle.list_by_project(team["project"].id, team["outsider"].id)

    def test_get_requires_membership(self, lifecycle, team):
        s = lifecycle.create_submission(team["project"].id, team["submitter"].id, "Mine")
        assert lifecycle.get_submission(s.id, team["reviewer"].id).id == s.id
        with pytest.raises(PermissionDeniedError):
            lifecycle.get_submission(s.id, team["outsider"].id)

    def test_get_missing(self, lifecycle, team):
        with pytest.raises(NotFoundError):
            lifecycle.get_submission("nope", team["admin"].id)


# ═══════════════════════════════════════════════════════════════
# Status workflow
# ═══════════════════════════════════════════════════════════════

class TestStatus:
    @pytest.fixture()
    def submission(self, lifecycle, team):
        return lifecycle.create_submission(team["project"].id, team["submitter"].id, "Patch")

    def test_invalid_status_checked_before_lookup(self, lifecycle, team):
        # The submission does not exist; the status error must win.
        with pytest.raises(InvalidStatusError):
            lifecycle.update_status("does-not-exist", "merged", team["reviewer"].id)

    @pytest.mark.parametrize("bad", ["merged", "", "PENDING", None, 3])
    def test_only_four_values_accepted(self, lifecycle, submission, team, bad):
        with pytest.raises(InvalidStatusError):
            lifecycle.update_status(submission.id, bad, team["reviewer"].id)

    def test_any_state_reachable_from_any_state(self, lifecycle, submission, team):
        order = ["approved", "pending", "changes_requested", "in_review", "approved", "changes_requested", "pending"]
        for status in order:
            updated = lifecycle.update_status(submission.id, status, team["reviewer"].id)
            assert updated.status.value == status
        assert {s.value for s in SubmissionStatus} == SUBMISSION_STATUSES

    def test_admin_may_update(self, lifecycle, submission, team):
        assert lifecycle.update_status(submission.id, "in_review", team["admin"].id).status is SubmissionStatus.IN_REVIEW

    @pytest.mark.parametrize("who", ["submitter", "outsider"])
    def test_submitter_and_outsider_forbidden(self, lifecycle, submission, team, who):
        with pytest.raises(PermissionDeniedError):
            lifecycle.update_status(submission.id, "approved", team[who].id)
        assert lifecycle.get_submission(submission.id, team["admin"].id).status is SubmissionStatus.PENDING

    def test_noop_transition_still_touches_updated_at(self, lifecycle, submission, team):
        before = submission.updated_at
        after = lifecycle.update_status(submission.id, "pending", team["reviewer"].id).updated_at
        assert after > before
        again = lifecycle.update_status(submission.id, "pending", team["reviewer"].id).updated_at
        assert again > after


# ═══════════════════════════════════════════════════════════════
# Delete
# ═══════════════════════════════════════════════════════════════

class TestDelete:
    def test_author_deletes_row_and_blob(self, lifecycle, storage, team):
        s = lifecycle.create_submission(
            team["project"].id, team["submitter"].id, "Gone soon", artifact=storage.stage(_upload()),
        )
        blob = storage.resolve(s.file_path)
        assert os.path.exists(blob)

        lifecycle.delete_submission(s.id, team["submitter"].id)

        assert Submission.query.count() == 0
        assert not os.path.exists(blob)

    @pytest.mark.parametrize("who", ["admin", "reviewer"])
    def test_only_author_deletes(self, lifecycle, team, who):
        s = lifecycle.create_submission(team["project"].id, team["submitter"].id, "Mine")
        with pytest.raises(PermissionDeniedError):
            lifecycle.delete_submission(s.id, team[who].id)
        assert Submission.query.count() == 1

    def test_blob_delete_failure_still_deletes_row(self, session, memberships, roots, team):
        storage = FailingDeleteStorage(*roots)
        lifecycle = SubmissionLifecycleManager(session, storage, memberships)
        s = lifecycle.create_submission(
            team["project"].id, team["submitter"].id, "Sticky blob", artifact=storage.stage(_upload()),
        )
        lifecycle.delete_submission(s.id, team["submitter"].id)
        assert Submission.query.count() == 0

    def test_delete_missing(self, lifecycle, team):
        with pytest.raises(NotFoundError):
            lifecycle.delete_submission("nope", team["admin"].id)
