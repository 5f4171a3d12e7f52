"""
Tests: Organization API — departments, roles and snapshot save.

Covers:
  - department create (palette color), rename, recolor, delete
  - role add / delete, duplicate names (409)
  - snapshot save: draft ids kept, absent entities removed, order kept
  - stored processes re-normalized after organization changes
"""

from raciflow.models import db
from raciflow.models.organization import Department, Role
from raciflow.models.process import Process


# ── Helpers ─────────────────────────────────────────────────────────────────


def _create_department(client, name="Sales", **extra):
    res = client.post("/api/v1/departments", json={"name": name, **extra})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _add_role(client, department_id, name="Manager", **extra):
    res = client.post(f"/api/v1/departments/{department_id}/roles", json={"name": name, **extra})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _create_process(client, title="Onboarding"):
    res = client.post("/api/v1/processes", json={"title": title})
    assert res.status_code == 201
    return res.get_json()


# ── Departments ─────────────────────────────────────────────────────────────


def test_health(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"
    assert res.headers.get("X-Request-ID")


def test_create_department_takes_next_palette_color(client):
    first = _create_department(client, "Sales")
    second = _create_department(client, "Finance")
    assert first["color"] == "#0EA5E9"
    assert second["color"] == "#22C55E"
    assert first["roles"] == []


def test_create_department_with_explicit_color(client):
    dept = _create_department(client, "Legal", color="#abc")
    assert dept["color"] == "#AABBCC"


def test_create_department_requires_name(client):
    res = client.post("/api/v1/departments", json={"name": "   "})
    assert res.status_code == 400
    assert res.get_json()["details"]["name"]


def test_create_department_rejects_invalid_color(client):
    res = client.post("/api/v1/departments", json={"name": "Ops", "color": "blue"})
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"


def test_duplicate_department_name_conflicts(client):
    _create_department(client, "Sales")
    res = client.post("/api/v1/departments", json={"name": " SALES "})
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"


def test_list_departments_in_creation_order(client):
    _create_department(client, "Sales")
    _create_department(client, "Finance")
    res = client.get("/api/v1/departments")
    assert res.status_code == 200
    assert [d["name"] for d in res.get_json()] == ["Sales", "Finance"]


def test_update_department(client):
    dept = _create_department(client, "Sales")
    res = client.patch(f"/api/v1/departments/{dept['id']}", json={"name": "Sales EMEA", "color": "#112233"})
    assert res.status_code == 200
    data = res.get_json()
    assert data["name"] == "Sales EMEA"
    assert data["color"] == "#112233"


def test_update_unknown_department_404(client):
    res = client.patch("/api/v1/departments/nope", json={"name": "X"})
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_delete_department_cascades_roles(client):
    dept = _create_department(client, "Sales")
    _add_role(client, dept["id"], "Manager")

    res = client.delete(f"/api/v1/departments/{dept['id']}")
    assert res.status_code == 200
    assert db.session.get(Department, dept["id"]) is None
    assert Role.query.count() == 0


# ── Roles ───────────────────────────────────────────────────────────────────


def test_add_role_appends_in_order(client):
    dept = _create_department(client, "Sales")
    _add_role(client, dept["id"], "Manager")
    rep = _add_role(client, dept["id"], "Rep", color="#22c55e")
    assert rep["departmentId"] == dept["id"]
    assert rep["color"] == "#22C55E"

    listed = client.get("/api/v1/departments").get_json()[0]
    assert [r["name"] for r in listed["roles"]] == ["Manager", "Rep"]


def test_duplicate_role_name_conflicts(client):
    dept = _create_department(client, "Sales")
    _add_role(client, dept["id"], "Manager")
    res = client.post(f"/api/v1/departments/{dept['id']}/roles", json={"name": "manager"})
    assert res.status_code == 409


def test_add_role_unknown_department_404(client):
    res = client.post("/api/v1/departments/nope/roles", json={"name": "Manager"})
    assert res.status_code == 404


def test_delete_role(client):
    dept = _create_department(client, "Sales")
    role = _add_role(client, dept["id"], "Manager")
    res = client.delete(f"/api/v1/roles/{role['id']}")
    assert res.status_code == 200
    assert client.get("/api/v1/departments").get_json()[0]["roles"] == []

    assert client.delete(f"/api/v1/roles/{role['id']}").status_code == 404


# ── Snapshot save ───────────────────────────────────────────────────────────


def test_save_snapshot_keeps_client_ids_and_order(client):
    existing = _create_department(client, "Sales")
    payload = {"departments": [
        {"id": "draft-legal", "name": "Legal", "color": "#ef4444", "roles": [
            {"id": "draft-counsel", "departmentId": "draft-legal", "name": "Counsel"},
        ]},
        {"id": existing["id"], "name": "Sales", "roles": []},
    ]}
    res = client.put("/api/v1/departments", json=payload)
    assert res.status_code == 200
    data = res.get_json()
    assert [d["id"] for d in data] == ["draft-legal", existing["id"]]
    assert data[0]["color"] == "#EF4444"
    assert data[0]["roles"][0]["id"] == "draft-counsel"


def test_save_snapshot_removes_absent_entities(client):
    sales = _create_department(client, "Sales")
    _add_role(client, sales["id"], "Manager")
    finance = _create_department(client, "Finance")

    res = client.put("/api/v1/departments", json={"departments": [
        {"id": finance["id"], "name": "Finance", "roles": []},
    ]})
    assert res.status_code == 200
    assert [d["name"] for d in res.get_json()] == ["Finance"]
    assert Role.query.count() == 0


def test_save_snapshot_validation_errors(client):
    res = client.put("/api/v1/departments", json={"departments": [
        {"id": "d1", "name": ""},
        {"id": "d1", "name": "Dup"},
    ]})
    assert res.status_code == 400
    details = res.get_json()["details"]
    assert "departments[0].name" in details
    assert "departments[1].id" in details


def test_save_snapshot_requires_list(client):
    res = client.put("/api/v1/departments", json={"departments": "nope"})
    assert res.status_code == 400


def test_snapshot_resolves_draft_names_in_stored_processes(client):
    process = _create_process(client)
    steps = [
        {"type": "start"},
        {"id": "a1", "type": "action", "label": "Review contract",
         "draftDepartmentName": "legal", "draftRoleName": "counsel"},
        {"type": "finish"},
    ]
    saved = client.put(f"/api/v1/processes/{process['id']}", json={"title": "Onboarding", "steps": steps})
    assert saved.get_json()["steps"][1]["draftDepartmentName"] == "legal"

    client.put("/api/v1/departments", json={"departments": [
        {"id": "d-legal", "name": "Legal", "roles": [{"id": "r-counsel", "name": "Counsel"}]},
    ]})

    stored = db.session.get(Process, process["id"])
    db.session.refresh(stored)
    step = stored.steps[1]
    assert step["departmentId"] == "d-legal"
    assert step["roleId"] == "r-counsel"
    assert step["draftDepartmentName"] is None


def test_deleting_department_clears_step_references(client):
    dept = _create_department(client, "Sales")
    role = _add_role(client, dept["id"], "Rep")
    process = _create_process(client)
    client.put(f"/api/v1/processes/{process['id']}", json={"steps": [
        {"type": "start"},
        {"id": "a1", "type": "action", "label": "Call", "departmentId": dept["id"], "roleId": role["id"]},
        {"type": "finish"},
    ]})

    client.delete(f"/api/v1/departments/{dept['id']}")

    step = client.get(f"/api/v1/processes/{process['id']}").get_json()["steps"][1]
    assert step["departmentId"] is None
    assert step["roleId"] is None


def test_rename_resolves_draft_names_in_stored_processes(client):
    dept = _create_department(client, "Legal affairs")
    process = _create_process(client)
    client.put(f"/api/v1/processes/{process['id']}", json={"steps": [
        {"type": "start"},
        {"id": "a1", "type": "action", "label": "Review", "draftDepartmentName": "Legal"},
        {"type": "finish"},
    ]})

    res = client.patch(f"/api/v1/departments/{dept['id']}", json={"name": "LEGAL"})
    assert res.status_code == 200

    stored = db.session.get(Process, process["id"])
    db.session.refresh(stored)
    assert stored.steps[1]["departmentId"] == dept["id"]
    assert stored.steps[1]["draftDepartmentName"] is None


def test_add_role_resolves_draft_role_names_in_stored_processes(client):
    dept = _create_department(client, "Legal")
    process = _create_process(client)
    client.put(f"/api/v1/processes/{process['id']}", json={"steps": [
        {"type": "start"},
        {"id": "a1", "type": "action", "label": "Review",
         "departmentId": dept["id"], "draftRoleName": "Counsel"},
        {"type": "finish"},
    ]})

    role = _add_role(client, dept["id"], "counsel")

    stored = db.session.get(Process, process["id"])
    db.session.refresh(stored)
    assert stored.steps[1]["roleId"] == role["id"]
    assert stored.steps[1]["draftRoleName"] is None
