import pytest
from fastapi.testclient import TestClient

from badman.models.sub_event import GameType
from badman.models.tournament import TournamentEvent
from badman.routes import sync as sync_routes


def _enroll(client, sub_event_id, player_id, **extra):
    return client.post(f"/api/sub-events/{sub_event_id}/enrollments", json={"player_id": player_id, **extra})


# ============================================================================
# Enrollments
# ============================================================================


class TestEnrollmentRoutes:
    def test_enroll_singles(self, client: TestClient, make_sub_event, make_player):
        sub_event = make_sub_event()
        player = make_player()

        response = _enroll(client, sub_event.id, player.id, notes="first tournament")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "CONFIRMED"
        assert data["enrollment_source"] == "MANUAL"
        assert data["notes"] == "first tournament"
        assert client.get(f"/api/enrollments/{data['id']}").json()["player_id"] == player.id

    def test_duplicate_enrollment_conflicts(self, client: TestClient, make_sub_event, make_player):
        sub_event = make_sub_event()
        player = make_player()
        _enroll(client, sub_event.id, player.id)

        response = _enroll(client, sub_event.id, player.id)
        assert response.status_code == 409
        assert response.json()["detail"] == "Player is already enrolled in this sub-event"

    def test_not_found(self, client: TestClient, make_sub_event, make_player):
        assert _enroll(client, 999, make_player().id).status_code == 404
        assert _enroll(client, make_sub_event().id, 999).status_code == 404
        assert client.get("/api/enrollments/999").status_code == 404

    def test_full_without_waiting_list(self, client: TestClient, make_sub_event, make_player):
        sub_event = make_sub_event(max_entries=1)
        _enroll(client, sub_event.id, make_player().id)

        response = _enroll(client, sub_event.id, make_player().id)
        assert response.status_code == 409
        assert "does not have a waiting list" in response.json()["detail"]

    def test_doubles_pair_confirmed(self, client: TestClient, make_sub_event, make_player):
        sub_event = make_sub_event(name="HD A", game_type=GameType.D)
        ann, bo = make_player(), make_player()

        first = _enroll(client, sub_event.id, ann.id, preferred_partner_id=bo.id).json()
        assert first["status"] == "PENDING"
        looking = client.get(f"/api/sub-events/{sub_event.id}/looking-for-partner").json()
        assert [e["id"] for e in looking] == [first["id"]]

        second = _enroll(client, sub_event.id, bo.id, preferred_partner_id=ann.id).json()
        assert second["status"] == "CONFIRMED"
        assert second["confirmed_partner_id"] == ann.id
        assert client.get(f"/api/enrollments/{first['id']}").json()["status"] == "CONFIRMED"

    def test_self_partner_rejected(self, client: TestClient, make_sub_event, make_player):
        sub_event = make_sub_event(game_type=GameType.D)
        player = make_player()
        response = _enroll(client, sub_event.id, player.id, preferred_partner_id=player.id)
        assert response.status_code == 400

    def test_guest_enrollment(self, client: TestClient, make_sub_event):
        sub_event = make_sub_event()
        url = f"/api/sub-events/{sub_event.id}/guest-enrollments"

        response = client.post(url, json={"guest_name": " Guest One ", "guest_email": "guest@example.com"})
        assert response.status_code == 201
        assert response.json()["is_guest"] is True
        assert response.json()["guest_name"] == "Guest One"
        assert response.json()["status"] == "CONFIRMED"

        assert client.post(url, json={"guest_name": "G", "guest_email": "nope"}).status_code == 422

    def test_guest_enrollment_disabled(self, client: TestClient, make_sub_event):
        sub_event = make_sub_event(allow_guest_enrollments=False)
        response = client.post(f"/api/sub-events/{sub_event.id}/guest-enrollments", json={"guest_name": "G"})
        assert response.status_code == 403

    def test_list_with_status_filter(self, client: TestClient, make_sub_event, make_player):
        sub_event = make_sub_event(max_entries=1, waiting_list_enabled=True)
        _enroll(client, sub_event.id, make_player().id)
        _enroll(client, sub_event.id, make_player().id)

        url = f"/api/sub-events/{sub_event.id}/enrollments"
        assert len(client.get(url).json()) == 2
        waiting = client.get(url, params={"status": "WAITING_LIST"}).json()
        assert [e["waiting_list_position"] for e in waiting] == [1]

    def test_eligibility(self, client: TestClient, make_sub_event, make_player):
        sub_event = make_sub_event(min_level=3)
        player = make_player(level_single=1)

        response = client.get(f"/api/sub-events/{sub_event.id}/eligibility", params={"player_id": player.id})

        assert response.status_code == 200
        data = response.json()
        assert data["eligible"] is False
        assert data["meets_level_requirement"] is False
        assert data["reasons"] == ["Minimum level 3 required"]
        assert client.get("/api/sub-events/999/eligibility", params={"player_id": player.id}).status_code == 404

    def test_bulk_validate(self, client: TestClient, make_sub_event, make_player):
        singles = make_sub_event(name="HE A")
        player = make_player()

        response = client.post(
            "/api/enrollments/validate",
            json={"player_id": player.id, "sub_event_ids": [singles.id, 999]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is False
        assert [(e["sub_event_id"], e["error_type"]) for e in data["errors"]] == [(999, "NOT_FOUND")]

    def test_patch_enrollment(self, client: TestClient, make_sub_event, make_player):
        sub_event = make_sub_event(game_type=GameType.D)
        enrollment = _enroll(client, sub_event.id, make_player().id).json()
        partner = make_player()

        response = client.patch(
            f"/api/enrollments/{enrollment['id']}", json={"preferred_partner_id": partner.id, "notes": "left handed"}
        )
        assert response.status_code == 200
        assert response.json()["preferred_partner_id"] == partner.id
        assert response.json()["notes"] == "left handed"

    def test_cancel_by_owner_withdraws_and_promotes(self, client: TestClient, make_sub_event, make_player):
        sub_event = make_sub_event(max_entries=1, waiting_list_enabled=True)
        owner = make_player()
        confirmed = _enroll(client, sub_event.id, owner.id).json()
        waiting = _enroll(client, sub_event.id, make_player().id).json()

        response = client.post(
            f"/api/enrollments/{confirmed['id']}/cancel",
            json={"cancelled_by_player_id": owner.id, "reason": "injured"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "WITHDRAWN"
        assert response.json()["withdrawn_at"] is not None
        assert client.get(f"/api/enrollments/{waiting['id']}").json()["status"] == "CONFIRMED"

        again = client.post(f"/api/enrollments/{confirmed['id']}/cancel", json={})
        assert again.status_code == 400

    def test_manual_promote(self, client: TestClient, make_sub_event, make_player):
        sub_event = make_sub_event(max_entries=1, waiting_list_enabled=True)
        confirmed = _enroll(client, sub_event.id, make_player().id).json()
        waiting = _enroll(client, sub_event.id, make_player().id).json()

        response = client.post(f"/api/enrollments/{waiting['id']}/promote")
        assert response.status_code == 200
        assert response.json()["status"] == "CONFIRMED"
        assert response.json()["waiting_list_position"] is None

        assert client.post(f"/api/enrollments/{confirmed['id']}/promote").status_code == 400

    def test_approve_and_reject(self, client: TestClient, make_sub_event, make_player):
        sub_event = make_sub_event(requires_approval=True)
        first = _enroll(client, sub_event.id, make_player().id).json()
        second = _enroll(client, sub_event.id, make_player().id).json()
        assert first["requires_approval"] is True

        approved = client.post(f"/api/enrollments/{first['id']}/approve", json={"approved_by": 42})
        assert approved.status_code == 200
        assert approved.json()["approved_by"] == 42
        assert approved.json()["approved_at"] is not None

        rejected = client.post(f"/api/enrollments/{second['id']}/reject", json={"reason": "Level too high"})
        assert rejected.status_code == 200
        assert rejected.json()["status"] == "CANCELLED"
        assert rejected.json()["rejection_reason"] == "Level too high"

        assert client.post(f"/api/enrollments/{second['id']}/approve", json={}).status_code == 400
        assert client.post(f"/api/enrollments/{first['id']}/reject", json={"reason": " "}).status_code == 422


# ============================================================================
# Carts
# ============================================================================


class TestCartRoutes:
    def test_cart_flow(self, client: TestClient, tournament: TournamentEvent, make_sub_event, make_player):
        singles = make_sub_event(name="HE A")
        doubles = make_sub_event(name="HD A", game_type=GameType.D)
        player, partner = make_player(), make_player()

        opened = client.post("/api/carts", json={"tournament_event_id": tournament.id, "player_id": player.id})
        assert opened.status_code == 201
        cart = opened.json()
        assert cart["status"] == "PENDING"
        assert cart["items"] == []

        reopened = client.post("/api/carts", json={"tournament_event_id": tournament.id, "player_id": player.id})
        assert reopened.json()["id"] == cart["id"]

        added = client.post(
            f"/api/carts/{cart['id']}/items",
            json={"items": [{"sub_event_id": singles.id}, {"sub_event_id": doubles.id, "preferred_partner_id": partner.id}]},
        )
        assert added.status_code == 200
        assert added.json()["total_sub_events"] == 2

        validated = client.post(f"/api/carts/{cart['id']}/validate")
        assert validated.json() == {"valid": True, "errors": [], "warnings": []}
        items = client.get(f"/api/carts/{cart['id']}").json()["items"]
        assert {item["validation_status"] for item in items} == {"VALID"}

        submitted = client.post(f"/api/carts/{cart['id']}/submit")
        assert submitted.status_code == 200
        assert [e["status"] for e in submitted.json()] == ["CONFIRMED", "PENDING"]
        assert client.get(f"/api/carts/{cart['id']}").json()["status"] == "COMPLETED"

    def test_remove_and_clear(self, client: TestClient, tournament: TournamentEvent, make_sub_event):
        first = make_sub_event(name="HE A")
        second = make_sub_event(name="HE B")
        cart = client.post("/api/carts", json={"tournament_event_id": tournament.id, "session_key": "browser-1"}).json()
        assert cart["session_key"] == "browser-1"
        client.post(
            f"/api/carts/{cart['id']}/items",
            json={"items": [{"sub_event_id": first.id}, {"sub_event_id": second.id}]},
        )

        removed = client.delete(f"/api/carts/{cart['id']}/items/{first.id}")
        assert [item["sub_event_id"] for item in removed.json()["items"]] == [second.id]

        cleared = client.delete(f"/api/carts/{cart['id']}/items")
        assert cleared.json()["items"] == []
        assert cleared.json()["total_sub_events"] == 0

    def test_errors(self, client: TestClient, tournament: TournamentEvent):
        assert client.post("/api/carts", json={"tournament_event_id": 999, "session_key": "x"}).status_code == 404
        assert client.get("/api/carts/999").status_code == 404

        cart = client.post("/api/carts", json={"tournament_event_id": tournament.id, "session_key": "x"}).json()
        assert client.post(f"/api/carts/{cart['id']}/items", json={"items": []}).status_code == 422
        assert client.post(f"/api/carts/{cart['id']}/submit").status_code == 400


# ============================================================================
# Sync
# ============================================================================


@pytest.fixture(name="queued")
def queued_fixture(monkeypatch):
    """Capture task enqueues instead of talking to the broker."""
    calls = []

    def recorder(name):
        def delay(*args, **kwargs):
            calls.append((name, args, kwargs))

        return delay

    monkeypatch.setattr(sync_routes.sync_tournament_structure_task, "delay", recorder("structure"))
    monkeypatch.setattr(sync_routes.sync_tournament_games_task, "delay", recorder("games"))
    monkeypatch.setattr(sync_routes.sync_draw_standings_task, "delay", recorder("standings"))
    return calls


class TestSyncRoutes:
    def test_structure_sync_is_queued(self, client: TestClient, tournament: TournamentEvent, queued):
        response = client.post("/api/sync/tournaments/T-SPRING/structure", json={"event_codes": ["1"]})

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "pending"
        assert data["job_type"] == "tournament-structure"
        assert queued == [("structure", ("T-SPRING", ["1"]), {"job_id": data["job_id"]})]

        jobs = client.get("/api/sync/jobs", params={"tournament_code": "T-SPRING"}).json()
        assert [(job["job_id"], job["status"]) for job in jobs] == [(data["job_id"], "pending")]

    def test_games_and_standings_are_queued(self, client: TestClient, tournament: TournamentEvent, queued):
        games = client.post("/api/sync/tournaments/T-SPRING/games")
        standings = client.post("/api/sync/tournaments/T-SPRING/draws/11/standings")

        assert games.status_code == 202
        assert standings.status_code == 202
        assert [call[0] for call in queued] == ["games", "standings"]
        assert queued[1][1] == ("T-SPRING", "11")
        assert len(client.get("/api/sync/jobs", params={"status": "pending"}).json()) == 2

    def test_unknown_tournament(self, client: TestClient, queued):
        response = client.post("/api/sync/tournaments/NOPE/structure")
        assert response.status_code == 404
        assert queued == []
        assert client.get("/api/sync/jobs").json() == []
