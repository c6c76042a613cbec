"""
Submission API tests — multipart uploads, status workflow, artifact
download and the cross-role access scenario.
"""

import os
from io import BytesIO

import pytest

from codereview.models.roles import ProjectRole
from codereview.services.project_service import ProjectMembershipManager


@pytest.fixture()
def team(session, storage, make_user):
    admin = make_user(email="admin@acme.io")
    reviewer = make_user(email="reviewer@acme.io")
    submitter = make_user(email="submitter@acme.io")
    outsider = make_user(email="outsider@acme.io")
    manager = ProjectMembershipManager(session, storage)
    project = manager.create_project("Review me", owner_user_id=admin.id)
    manager.add_member(project.id, admin.id, reviewer.id, ProjectRole.REVIEWER)
    manager.add_member(project.id, admin.id, submitter.id, ProjectRole.SUBMITTER)
    return {
        "project_id": project.id,
        "admin": admin,
        "reviewer": reviewer,
        "submitter": submitter,
        "outsider": outsider,
    }


def _submit(client, headers, project_id, title="Patch", file=None, **fields):
    data = {"title": title, **fields}
    if file is not None:
        data["file"] = file
    return client.post(
        f"/projects/{project_id}/submissions",
        data=data,
        headers=headers,
        content_type="multipart/form-data",
    )


def _py_file(name="main.py", body=b"print('hi')\n"):
    return (BytesIO(body), name, "text/x-python")


# ═══════════════════════════════════════════════════════════════
# Create / read
# ═══════════════════════════════════════════════════════════════

class TestCreateAPI:
    def test_create_with_file(self, client, team, auth_headers, storage):
        res = _submit(
            client, auth_headers(team["submitter"]), team["project_id"],
            title="Parser fix", description="Handles EOF", file=_py_file(),
        )
        assert res.status_code == 201
        data = res.get_json()["data"]
        assert data["status"] == "pending"
        assert data["title"] == "Parser fix"
        assert data["description"] == "Handles EOF"
        assert data["user_id"] == team["submitter"].id
        assert data["file_name"] == "main.py"
        assert data["file_type"] == "text/x-python"
        assert data["file_path"].startswith("/uploads/submissions/")
        assert os.path.isfile(storage.resolve(data["file_path"]))

    def test_create_without_file_via_json(self, client, team, auth_headers):
        res = client.post(
            f"/projects/{team['project_id']}/submissions",
            json={"title": "Design note"},
            headers=auth_headers(team["submitter"]),
        )
        assert res.status_code == 201
        data = res.get_json()["data"]
        assert data["file_path"] is None
        assert data["file_name"] is None

    def test_missing_title_is_400(self, client, team, auth_headers):
        res = _submit(client, auth_headers(team["submitter"]), team["project_id"], title="", file=_py_file())
        assert res.status_code == 400
        assert "title" in res.get_json()["errors"]

    def test_disallowed_type_is_400(self, client, team, auth_headers, app):
        res = _submit(
            client, auth_headers(team["submitter"]), team["project_id"],
            file=(BytesIO(b"MZ\x90\x00"), "setup.exe", "application/x-msdownload"),
        )
        assert res.status_code == 400
        assert "file" in res.get_json()["errors"]
        staging = app.config["UPLOAD_STAGING_FOLDER"]
        assert not os.path.isdir(staging) or os.listdir(staging) == []

    def test_oversized_upload_is_413(self, client, team, auth_headers, app, monkeypatch):
        monkeypatch.setitem(app.config, "MAX_CONTENT_LENGTH", 64)
        res = _submit(
            client, auth_headers(team["submitter"]), team["project_id"],
            file=_py_file(body=b"x" * 4096),
        )
        assert res.status_code == 413
        assert res.get_json()["code"] == "ERR_PAYLOAD_TOO_LARGE"

    def test_outsider_is_403_and_nothing_stored(self, client, team, auth_headers, app):
        res = _submit(client, auth_headers(team["outsider"]), team["project_id"], file=_py_file())
        assert res.status_code == 403
        uploads = app.config["UPLOAD_FOLDER"]
        assert not os.path.isdir(uploads) or os.listdir(uploads) == []

    def test_unknown_project_is_404(self, client, team, auth_headers):
        res = _submit(client, auth_headers(team["admin"]), "no-such-project")
        assert res.status_code == 404

    def test_list_newest_first(self, client, team, auth_headers):
        headers = auth_headers(team["submitter"])
        first = _submit(client, headers, team["project_id"], title="First").get_json()["data"]
        second = _submit(client, headers, team["project_id"], title="Second").get_json()["data"]

        res = client.get(f"/projects/{team['project_id']}/submissions", headers=auth_headers(team["reviewer"]))
        assert res.status_code == 200
        assert [s["id"] for s in res.get_json()["data"]] == [second["id"], first["id"]]

    def test_list_as_outsider_is_403(self, client, team, auth_headers):
        res = client.get(f"/projects/{team['project_id']}/submissions", headers=auth_headers(team["outsider"]))
        assert res.status_code == 403

    def test_get_missing_is_404(self, client, team, auth_headers):
        res = client.get("/submissions/nope", headers=auth_headers(team["admin"]))
        assert res.status_code == 404


# ═══════════════════════════════════════════════════════════════
# Status / delete / download
# ═══════════════════════════════════════════════════════════════

class TestStatusAPI:
    @pytest.fixture()
    def submission_id(self, client, team, auth_headers):
        res = _submit(client, auth_headers(team["submitter"]), team["project_id"], file=_py_file())
        return res.get_json()["data"]["id"]

    def test_reviewer_sets_status(self, client, team, auth_headers, submission_id):
        res = client.patch(
            f"/submissions/{submission_id}/status",
            json={"status": "changes_requested"},
            headers=auth_headers(team["reviewer"]),
        )
        assert res.status_code == 200
        assert res.get_json()["data"]["status"] == "changes_requested"

    def test_invalid_status_code(self, client, team, auth_headers, submission_id):
        res = client.patch(
            f"/submissions/{submission_id}/status",
            json={"status": "merged"},
            headers=auth_headers(team["reviewer"]),
        )
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_INVALID_STATUS"

    def test_missing_status_is_invalid(self, client, team, auth_headers, submission_id):
        res = client.patch(f"/submissions/{submission_id}/status", json={}, headers=auth_headers(team["reviewer"]))
        assert res.get_json()["code"] == "ERR_INVALID_STATUS"

    def test_submitter_cannot_set_status(self, client, team, auth_headers, submission_id):
        res = client.patch(
            f"/submissions/{submission_id}/status",
            json={"status": "approved"},
            headers=auth_headers(team["submitter"]),
        )
        assert res.status_code == 403
        assert res.get_json()["message"] == "Only reviewers and admins can update submission status"

    def test_download_artifact(self, client, team, auth_headers, submission_id):
        res = client.get(f"/submissions/{submission_id}/artifact", headers=auth_headers(team["reviewer"]))
        assert res.status_code == 200
        assert res.data == b"print('hi')\n"
        assert "main.py" in res.headers["Content-Disposition"]
        res.close()

    def test_download_as_outsider_is_403(self, client, team, auth_headers, submission_id):
        res = client.get(f"/submissions/{submission_id}/artifact", headers=auth_headers(team["outsider"]))
        assert res.status_code == 403

    def test_download_without_artifact_is_404(self, client, team, auth_headers):
        created = _submit(client, auth_headers(team["submitter"]), team["project_id"]).get_json()["data"]
        res = client.get(f"/submissions/{created['id']}/artifact", headers=auth_headers(team["admin"]))
        assert res.status_code == 404

    def test_author_deletes(self, client, team, auth_headers, submission_id, storage):
        path = client.get(
            f"/submissions/{submission_id}", headers=auth_headers(team["submitter"]),
        ).get_json()["data"]["file_path"]

        res = client.delete(f"/submissions/{submission_id}", headers=auth_headers(team["submitter"]))
        assert res.status_code == 200
        assert res.get_json()["message"] == "Submission deleted successfully"
        assert not os.path.exists(storage.resolve(path))
        assert client.get(f"/submissions/{submission_id}", headers=auth_headers(team["admin"])).status_code == 404

    def test_admin_cannot_delete_others_submission(self, client, team, auth_headers, submission_id):
        res = client.delete(f"/submissions/{submission_id}", headers=auth_headers(team["admin"]))
        assert res.status_code == 403
        assert res.get_json()["message"] == "You can only delete your own submissions"


# ═══════════════════════════════════════════════════════════════
# End-to-end access scenario
# ═══════════════════════════════════════════════════════════════

def test_membership_drives_access(client, make_user, auth_headers):
    a, b, c = make_user(), make_user(), make_user()

    project = client.post("/projects", json={"name": "P"}, headers=auth_headers(a)).get_json()["data"]
    pid = project["id"]

    assert client.get(f"/projects/{pid}", headers=auth_headers(b)).status_code == 403

    for user, role in ((b, "reviewer"), (c, "submitter")):
        res = client.post(f"/projects/{pid}/members", json={"userId": user.id, "role": role}, headers=auth_headers(a))
        assert res.status_code == 200

    assert client.get(f"/projects/{pid}", headers=auth_headers(b)).status_code == 200

    created = client.post(
        f"/projects/{pid}/submissions", json={"title": "Work"}, headers=auth_headers(c),
    ).get_json()["data"]

    res = client.patch(
        f"/submissions/{created['id']}/status", json={"status": "in_review"}, headers=auth_headers(b),
    )
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "in_review"

    res = client.patch(
        f"/submissions/{created['id']}/status", json={"status": "approved"}, headers=auth_headers(c),
    )
    assert res.status_code == 403
