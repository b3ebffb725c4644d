from tests.conftest import join_and_approve


def create_group(client, **overrides):
    body = {"name": "Manali trek", "destination": "Manali", "maxMembers": 4}
    body.update(overrides)
    return client.post("/api/groups", json=body)


def test_create_group_makes_creator_a_member(alice):
    resp = create_group(alice, budgetMin="5000", budgetMax="20000")
    assert resp.status_code == 201
    group = resp.json()["data"]
    assert group["creatorId"] == alice.user_id
    assert group["currentMembersCount"] == 1
    assert group["availableSlots"] == 3
    assert group["totalExpenses"] == 0.0
    assert group["budget"] == {"min": 5000.0, "max": 20000.0, "currency": "INR"}
    assert group["members"][0]["role"] == "creator"


def test_budget_range_must_be_ordered(alice):
    resp = create_group(alice, budgetMin="20000", budgetMax="5000")
    assert resp.status_code == 400


def test_group_size_bounds(alice):
    assert create_group(alice, maxMembers=1).status_code == 400
    assert create_group(alice, maxMembers=21).status_code == 400


def test_join_request_and_approval(alice, bob):
    group_id = create_group(alice).json()["data"]["id"]

    resp = bob.post(f"/api/groups/{group_id}/join", json={"message": "I have a tent"})
    assert resp.status_code == 201
    assert resp.json()["data"]["status"] == "pending"

    group = alice.get(f"/api/groups/{group_id}").json()["data"]
    assert [r["userId"] for r in group["pendingRequests"]] == [bob.user_id]

    notes = alice.get("/api/notifications").json()["data"]["notifications"]
    assert notes[0]["type"] == "join_request"
    assert notes[0]["metadata"]["userId"] == bob.user_id

    resp = alice.post(f"/api/groups/{group_id}/requests/{bob.user_id}/approve")
    assert resp.status_code == 200
    assert resp.json()["data"]["currentMembersCount"] == 2

    kinds = [n["type"] for n in bob.get("/api/notifications").json()["data"]["notifications"]]
    assert kinds == ["join_approved"]


def test_duplicate_join_requests(alice, bob):
    group_id = create_group(alice).json()["data"]["id"]
    bob.post(f"/api/groups/{group_id}/join", json={})

    resp = bob.post(f"/api/groups/{group_id}/join", json={})
    assert resp.status_code == 409
    assert resp.json()["message"] == "Join request already pending"

    resp = alice.post(f"/api/groups/{group_id}/join", json={})
    assert resp.status_code == 409
    assert resp.json()["message"] == "You are already a member of this group"


def test_only_creator_can_approve(alice, bob, carol):
    group_id = create_group(alice).json()["data"]["id"]
    join_and_approve(alice, bob, group_id)
    carol.post(f"/api/groups/{group_id}/join", json={})

    resp = bob.post(f"/api/groups/{group_id}/requests/{carol.user_id}/approve")
    assert resp.status_code == 403


def test_approving_unknown_request(alice, bob):
    group_id = create_group(alice).json()["data"]["id"]
    resp = alice.post(f"/api/groups/{group_id}/requests/{bob.user_id}/approve")
    assert resp.status_code == 404
    assert resp.json()["message"] == "Join request not found"


def test_rejected_user_can_ask_again(alice, bob):
    group_id = create_group(alice).json()["data"]["id"]
    bob.post(f"/api/groups/{group_id}/join", json={})

    resp = alice.post(f"/api/groups/{group_id}/requests/{bob.user_id}/reject")
    assert resp.status_code == 200
    assert bob.get("/api/notifications").json()["data"]["notifications"][0]["type"] == "join_rejected"

    resp = bob.post(f"/api/groups/{group_id}/join", json={"message": "Please?"})
    assert resp.status_code == 201
    assert resp.json()["data"]["status"] == "pending"
    assert resp.json()["data"]["message"] == "Please?"


def test_full_group_refuses_new_requests(alice, bob, carol):
    group_id = create_group(alice, maxMembers=2).json()["data"]["id"]
    join_and_approve(alice, bob, group_id)

    resp = carol.post(f"/api/groups/{group_id}/join", json={})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Group is full"


def test_members_list_is_for_members_only(alice, bob, outsider):
    group_id = create_group(alice).json()["data"]["id"]
    join_and_approve(alice, bob, group_id)

    members = bob.get(f"/api/groups/{group_id}/members").json()["data"]
    assert {m["userId"] for m in members} == {alice.user_id, bob.user_id}

    assert outsider.get(f"/api/groups/{group_id}/members").status_code == 403


def test_profile_update(alice):
    resp = alice.patch("/api/me", json={"upiId": "alice@ybl", "email": "alice@example.com"})
    assert resp.status_code == 200
    assert resp.json()["data"]["upiId"] == "alice@ybl"
    assert alice.get("/api/me").json()["data"]["email"] == "alice@example.com"

    resp = alice.patch("/api/me", json={"upiId": "not-a-vpa"})
    assert resp.status_code == 400
