import uuid

from app.users.models import UserRole


async def test_create_and_fetch_user(client):
    resp = await client.post(
        "/api/users",
        json={
            "username": "  Maria_S ",
            "email": "maria@example.com",
            "first_name": "Maria",
            "last_name": "Souza",
        },
    )
    assert resp.status_code == 201, resp.text
    user = resp.json()
    assert user["username"] == "maria_s"
    assert user["role"] == UserRole.MEMBER.value
    assert user["team_id"] is None

    fetched = await client.get(f"/api/users/{user['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["email"] == "maria@example.com"


async def test_duplicate_users_are_rejected(client, make_user):
    await make_user("taken")

    resp = await client.post(
        "/api/users",
        json={"username": "other", "email": "taken@example.com", "first_name": "A", "last_name": "B"},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Email already registered"

    resp = await client.post(
        "/api/users",
        json={"username": "taken", "email": "new@example.com", "first_name": "A", "last_name": "B"},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Username already taken"

    resp = await client.post(
        "/api/users",
        json={"username": "bad name!", "email": "x@example.com", "first_name": "A", "last_name": "B"},
    )
    assert resp.status_code == 422


async def test_update_and_list_users(client, make_user):
    user = await make_user("editable")

    resp = await client.patch(f"/api/users/{user.id}", json={"is_active": False, "last_name": "Gone"})
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False
    assert resp.json()["last_name"] == "Gone"

    usernames = {u["username"] for u in (await client.get("/api/users")).json()}
    assert usernames == {"admin", "editable"}

    assert (await client.get(f"/api/users/{uuid.uuid4()}")).status_code == 404


async def test_me_is_open_to_any_role(client, make_user, acting):
    acting.user = await make_user("someone")
    resp = await client.get("/api/users/me")
    assert resp.status_code == 200
    assert resp.json()["username"] == "someone"

    assert (await client.get("/api/users")).status_code == 403
    assert (await client.get(f"/api/users/{acting.user.id}/history")).status_code == 403


async def test_career_report_follows_slot_changes(client, make_user):
    ana = await make_user("ana")
    north = (await client.post("/api/teams", json={"name": "North", "description": "n"})).json()
    south = (await client.post("/api/teams", json={"name": "South", "description": "s"})).json()

    async def op(team, operation, user_id=None):
        body = {"operation": operation}
        if user_id:
            body["user_id"] = str(user_id)
        resp = await client.post(f"/api/teams/{team['id']}/slots", json=body)
        assert resp.status_code == 200, resp.text

    await op(north, "add_member", ana.id)
    await op(north, "remove_member", ana.id)
    await op(south, "assign_leader", ana.id)

    resp = await client.get(f"/api/users/{ana.id}/history")
    assert resp.status_code == 200
    report = resp.json()

    assert [(e["team_name"], e["type"]) for e in report["timeline"]] == [
        ("North", "member_assignment"),
        ("South", "leader_assignment"),
    ]
    assert report["timeline"][0]["end_date"] is not None
    assert report["timeline"][0]["slot_id"] is not None
    assert report["current_assignment"]["team_id"] == south["id"]
    assert report["analytics"]["current_team"] == {
        "id": south["id"],
        "name": "South",
        "role": UserRole.TEAM_LEADER.value,
    }
    assert report["analytics"]["current_role"] == UserRole.TEAM_LEADER.value
    assert report["analytics"]["total_teams"] == 2
    assert report["analytics"]["leadership_positions"] == 1
    assert report["analytics"]["member_positions"] == 1
    assert report["summary"]["current_status"] == "Active"
    assert report["user"]["team_id"] == south["id"]

    # Deleted teams stay in the report
    resp = await client.delete(f"/api/teams/{south['id']}", params={"force": "true"})
    assert resp.status_code == 200
    report = (await client.get(f"/api/users/{ana.id}/history")).json()
    assert {e["team_id"] for e in report["timeline"]} == {north["id"], south["id"]}
    assert report["user"]["team_id"] is None
    assert report["timeline"][1]["is_current"] is True
    assert report["current_assignment"] is None
    assert report["analytics"]["current_team"] is None
    assert report["summary"]["current_status"] == "Unassigned"


async def test_career_report_for_unknown_user_is_404(client):
    assert (await client.get(f"/api/users/{uuid.uuid4()}/history")).status_code == 404
