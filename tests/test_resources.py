import pytest
from httpx import AsyncClient


async def _room(client: AsyncClient, headers: dict, number: str = "101", **extra) -> dict:
    payload = {"name": f"Operatory {number}", "room_number": number, **extra}
    response = await client.post("/api/v1/resources/rooms", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def _chair(client: AsyncClient, headers: dict, room_id: str, number: str = "A", **extra) -> dict:
    payload = {"name": f"Chair {number}", "chair_number": number, **extra}
    response = await client.post(f"/api/v1/resources/rooms/{room_id}/chairs", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.mark.resources
@pytest.mark.integration
class TestRooms:
    """Room management"""

    async def test_create_room(self, client: AsyncClient, admin_headers: dict) -> None:
        room = await _room(client, admin_headers, capabilities=["ceph", "intraoral_scanner"])

        assert room["room_type"] == "OPERATORY"
        assert room["status"] == "ACTIVE"
        assert room["capabilities"] == ["ceph", "intraoral_scanner"]
        assert room["chair_count"] == 0

    async def test_room_number_is_unique_per_clinic(self, client: AsyncClient, admin_headers: dict) -> None:
        await _room(client, admin_headers, "B2")

        response = await client.post(
            "/api/v1/resources/rooms", json={"name": "Other", "room_number": "b2"}, headers=admin_headers
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ROOM_NUMBER_EXISTS"

    async def test_rename_room_to_taken_number(self, client: AsyncClient, admin_headers: dict) -> None:
        await _room(client, admin_headers, "101")
        second = await _room(client, admin_headers, "102")

        response = await client.put(
            f"/api/v1/resources/rooms/{second['id']}", json={"room_number": "101"}, headers=admin_headers
        )

        assert response.json()["error"]["code"] == "ROOM_NUMBER_EXISTS"

    async def test_list_rooms_with_chair_counts(self, client: AsyncClient, admin_headers: dict) -> None:
        first = await _room(client, admin_headers, "101")
        await _room(client, admin_headers, "102", room_type="CONSULTATION")
        await _chair(client, admin_headers, first["id"], "A")
        await _chair(client, admin_headers, first["id"], "B")

        response = await client.get(
            "/api/v1/resources/rooms", params={"room_type": "OPERATORY"}, headers=admin_headers
        )

        data = response.json()["data"]
        assert data["total"] == 1
        assert data["items"][0]["id"] == first["id"]
        assert data["items"][0]["chair_count"] == 2

    async def test_cannot_delete_room_with_chairs(self, client: AsyncClient, admin_headers: dict) -> None:
        room = await _room(client, admin_headers)
        await _chair(client, admin_headers, room["id"])

        response = await client.delete(f"/api/v1/resources/rooms/{room['id']}", headers=admin_headers)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "ROOM_HAS_CHAIRS"
        assert error["details"]["chair_count"] == 1

    async def test_retired_chairs_do_not_block_delete(self, client: AsyncClient, admin_headers: dict) -> None:
        room = await _room(client, admin_headers)
        await _chair(client, admin_headers, room["id"], status="RETIRED")

        response = await client.delete(f"/api/v1/resources/rooms/{room['id']}", headers=admin_headers)

        assert response.status_code == 200
        missing = await client.get(f"/api/v1/resources/rooms/{room['id']}", headers=admin_headers)
        assert missing.json()["error"]["code"] == "ROOM_NOT_FOUND"

    async def test_front_desk_can_read_but_not_create(self, client: AsyncClient, front_desk_headers: dict,
                                                      admin_headers: dict) -> None:
        await _room(client, admin_headers)

        listing = await client.get("/api/v1/resources/rooms", headers=front_desk_headers)
        assert listing.status_code == 200

        response = await client.post(
            "/api/v1/resources/rooms", json={"name": "Lab", "room_number": "L1"}, headers=front_desk_headers
        )
        assert response.status_code == 403


@pytest.mark.resources
@pytest.mark.integration
class TestChairs:
    async def test_create_chair(self, client: AsyncClient, admin_headers: dict) -> None:
        room = await _room(client, admin_headers)

        chair = await _chair(client, admin_headers, room["id"], manufacturer="A-dec", next_maintenance_date="2027-01-15")

        assert chair["room_id"] == room["id"]
        assert chair["condition"] == "GOOD"
        assert chair["next_maintenance_date"] == "2027-01-15"

    async def test_chair_in_unknown_room(self, client: AsyncClient, admin_headers: dict) -> None:
        response = await client.post(
            "/api/v1/resources/rooms/missing-room/chairs",
            json={"name": "Chair A", "chair_number": "A"},
            headers=admin_headers,
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ROOM_NOT_FOUND"

    async def test_chair_number_unique_within_room(self, client: AsyncClient, admin_headers: dict) -> None:
        first = await _room(client, admin_headers, "101")
        second = await _room(client, admin_headers, "102")
        await _chair(client, admin_headers, first["id"], "A")
        await _chair(client, admin_headers, second["id"], "A")

        response = await client.post(
            f"/api/v1/resources/rooms/{first['id']}/chairs",
            json={"name": "Duplicate", "chair_number": "a"},
            headers=admin_headers,
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CHAIR_NUMBER_EXISTS"

    async def test_move_chair_between_rooms(self, client: AsyncClient, admin_headers: dict) -> None:
        first = await _room(client, admin_headers, "101")
        second = await _room(client, admin_headers, "102")
        chair = await _chair(client, admin_headers, first["id"])

        response = await client.put(
            f"/api/v1/resources/chairs/{chair['id']}",
            json={"room_id": second["id"], "status": "IN_REPAIR"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["room_id"] == second["id"]
        assert data["status"] == "IN_REPAIR"

        in_second = await client.get(f"/api/v1/resources/rooms/{second['id']}/chairs", headers=admin_headers)
        assert [c["id"] for c in in_second.json()["data"]["items"]] == [chair["id"]]

    async def test_list_chairs_by_status(self, client: AsyncClient, admin_headers: dict) -> None:
        room = await _room(client, admin_headers)
        await _chair(client, admin_headers, room["id"], "A")
        broken = await _chair(client, admin_headers, room["id"], "B", status="OUT_OF_SERVICE")

        response = await client.get(
            "/api/v1/resources/chairs", params={"status": "OUT_OF_SERVICE"}, headers=admin_headers
        )

        items = response.json()["data"]["items"]
        assert [c["id"] for c in items] == [broken["id"]]

    async def test_delete_chair(self, client: AsyncClient, admin_headers: dict) -> None:
        room = await _room(client, admin_headers)
        chair = await _chair(client, admin_headers, room["id"])

        response = await client.delete(f"/api/v1/resources/chairs/{chair['id']}", headers=admin_headers)
        assert response.status_code == 200

        missing = await client.get(f"/api/v1/resources/chairs/{chair['id']}", headers=admin_headers)
        assert missing.json()["error"]["code"] == "CHAIR_NOT_FOUND"

        deleted_room = await client.delete(f"/api/v1/resources/rooms/{room['id']}", headers=admin_headers)
        assert deleted_room.status_code == 200
