"""Tests for client requests and the specialist feed."""

from httpx import AsyncClient


def _request_body(**overrides) -> dict:
    body = {
        "categorySlug": "psychologist",
        "title": "Нужна консультация",
        "description": "Хочу разобраться с тревожностью и стрессом на работе",
        "preferredFormat": "online",
    }
    body.update(overrides)
    return body


class TestCreateRequest:
    async def test_create(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        resp = await client.post(
            "/api/requests",
            json=_request_body(budgetMinCents=400000, budgetMaxCents=700000),
            headers=customer.headers,
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "OPEN"
        assert data["id"]
        assert data["createdAt"]

    async def test_anonymous(self, client: AsyncClient) -> None:
        assert (await client.post("/api/requests", json=_request_body())).status_code == 401

    async def test_unknown_category(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        resp = await client.post(
            "/api/requests", json=_request_body(categorySlug="astrology"), headers=customer.headers
        )
        assert resp.status_code == 404
        assert resp.json() == {"error": "Категория не найдена"}

    async def test_offline_needs_city(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        resp = await client.post(
            "/api/requests", json=_request_body(preferredFormat="offline"), headers=customer.headers
        )
        assert resp.status_code == 400
        assert "Для офлайн-встречи укажите город" in resp.json()["details"][0]["message"]

    async def test_inverted_budget(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        resp = await client.post(
            "/api/requests",
            json=_request_body(budgetMinCents=700000, budgetMaxCents=400000),
            headers=customer.headers,
        )
        assert resp.status_code == 400

    async def test_short_description(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        resp = await client.post("/api/requests", json=_request_body(description="коротко"), headers=customer.headers)
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "description"

    async def test_unknown_format(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        resp = await client.post(
            "/api/requests", json=_request_body(preferredFormat="video"), headers=customer.headers
        )
        assert resp.status_code == 400

    async def test_padded_title_too_short(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        resp = await client.post("/api/requests", json=_request_body(title="    x"), headers=customer.headers)
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "title"

    async def test_text_is_trimmed(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        resp = await client.post(
            "/api/requests", json=_request_body(title="  Нужна консультация  "), headers=customer.headers
        )
        assert resp.status_code == 201
        item = (await client.get("/api/requests/mine", headers=customer.headers)).json()["items"][0]
        assert item["title"] == "Нужна консультация"


class TestMyRequests:
    async def test_only_own_requests(self, client: AsyncClient, market) -> None:
        alice = await market.register("alice@test.io")
        bob = await market.register("bob@test.io")
        mine = await market.create_request(alice)
        await market.create_request(bob)

        resp = await client.get("/api/requests/mine", headers=alice.headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        item = data["items"][0]
        assert item["id"] == mine
        assert item["preferredFormat"] == "online"
        assert item["category"] == {"slug": "psychologist", "name": "Психолог"}
        assert item["applications"] == []

    async def test_status_filter_and_pagination(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        ids = [await market.create_request(customer, title=f"Заявка номер {n}") for n in range(3)]
        await market.set_status(customer, ids[0], "CANCELLED")

        open_only = (await client.get("/api/requests/mine?status=OPEN", headers=customer.headers)).json()
        assert open_only["total"] == 2
        assert ids[0] not in {i["id"] for i in open_only["items"]}

        page = (await client.get("/api/requests/mine?limit=1&offset=1", headers=customer.headers)).json()
        assert page["total"] == 3
        assert len(page["items"]) == 1

    async def test_accepted_application_is_attached(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io", ["psychologist"], display_name="Анна")
        request_id = await market.create_request(customer)
        application_id = await market.apply(spec, request_id)
        await client.post(f"/api/applications/{application_id}/accept", headers=customer.headers)

        item = (await client.get("/api/requests/mine", headers=customer.headers)).json()["items"][0]
        assert item["status"] == "IN_PROGRESS"
        assert item["applications"][0]["id"] == application_id
        assert item["applications"][0]["status"] == "ACCEPTED"
        assert item["applications"][0]["specialist"]["id"] == spec.user_id
        assert item["applications"][0]["specialist"]["displayName"] == "Анна"

    async def test_invalid_status_filter(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        resp = await client.get("/api/requests/mine?status=open", headers=customer.headers)
        assert resp.status_code == 400


class TestFeed:
    async def test_feed_shows_own_categories(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io", ["psychologist"])
        psy = await market.create_request(customer)
        await market.create_request(customer, categorySlug="nutritionist")

        resp = await client.get("/api/requests/feed", headers=spec.headers)
        assert resp.status_code == 200
        data = resp.json()
        assert [i["id"] for i in data["items"]] == [psy]
        assert data["items"][0]["relevanceScore"] >= 1
        assert "Ваша категория" in data["items"][0]["relevanceReasons"]

    async def test_no_categories_means_empty_feed(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io")
        await market.create_request(customer)

        resp = await client.get("/api/requests/feed", headers=spec.headers)
        assert resp.json() == {"items": [], "total": 0}
        assert (await client.get("/api/requests/unread-count", headers=spec.headers)).json() == {"count": 0}

        explicit = await client.get("/api/requests/feed?category=psychologist", headers=spec.headers)
        assert explicit.json()["total"] == 1

    async def test_explicit_category(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io", ["psychologist"])
        nutrition = await market.create_request(customer, categorySlug="nutritionist")

        resp = await client.get("/api/requests/feed?category=nutritionist", headers=spec.headers)
        assert [i["id"] for i in resp.json()["items"]] == [nutrition]

    async def test_own_requests_excluded(self, client: AsyncClient, market) -> None:
        spec = await market.specialist("spec@test.io", ["psychologist"])
        await market.create_request(spec)
        resp = await client.get("/api/requests/feed", headers=spec.headers)
        assert resp.json() == {"items": [], "total": 0}

    async def test_closed_requests_hidden(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io", ["psychologist"])
        request_id = await market.create_request(customer)
        await market.set_status(customer, request_id, "CANCELLED")
        assert (await client.get("/api/requests/feed", headers=spec.headers)).json()["total"] == 0

    async def test_format_and_city(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io", ["psychologist"], city="Казань")
        online = await market.create_request(customer, title="Онлайн сессия")
        kazan = await market.create_request(
            customer, title="Встреча в Казани", preferredFormat="offline", city="Казань"
        )
        moscow = await market.create_request(
            customer, title="Встреча в Москве", preferredFormat="offline", city="Москва"
        )

        offline = (await client.get("/api/requests/feed?format=offline", headers=spec.headers)).json()
        assert {i["id"] for i in offline["items"]} == {kazan, moscow}

        by_city = (await client.get("/api/requests/feed?city=Казань", headers=spec.headers)).json()
        assert {i["id"] for i in by_city["items"]} == {online, kazan}
        kazan_item = next(i for i in by_city["items"] if i["id"] == kazan)
        assert "В вашем городе" in kazan_item["relevanceReasons"]

    async def test_text_search(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io", ["psychologist"])
        match = await market.create_request(customer, title="Проблемы со сном")
        await market.create_request(customer)
        resp = await client.get("/api/requests/feed", params={"q": "сном"}, headers=spec.headers)
        assert [i["id"] for i in resp.json()["items"]] == [match]

    async def test_budget_ordering(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io", ["psychologist"])
        small = await market.create_request(customer, budgetMinCents=100000, budgetMaxCents=200000)
        large = await market.create_request(customer, budgetMinCents=500000, budgetMaxCents=900000)
        unknown = await market.create_request(customer, budgetMinCents=None, budgetMaxCents=None)
        resp = await client.get("/api/requests/feed", headers=spec.headers)
        assert [i["id"] for i in resp.json()["items"]] == [large, small, unknown]

    async def test_requires_specialist(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        assert (await client.get("/api/requests/feed", headers=customer.headers)).status_code == 403


class TestStatusChange:
    async def test_owner_cancels_open_request(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        request_id = await market.create_request(customer)
        resp = await market.set_status(customer, request_id, "CANCELLED")
        assert resp.status_code == 200
        assert resp.json() == {"id": request_id, "status": "CANCELLED"}

    async def test_cancelled_is_terminal(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        request_id = await market.create_request(customer)
        await market.set_status(customer, request_id, "CANCELLED")
        resp = await market.set_status(customer, request_id, "OPEN")
        assert resp.status_code == 400

    async def test_owner_cannot_skip_to_in_progress(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        request_id = await market.create_request(customer)
        resp = await client.put(
            f"/api/requests/{request_id}/status", json={"status": "IN_PROGRESS"}, headers=customer.headers
        )
        assert resp.status_code == 400

    async def test_accepted_specialist_completes(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io", ["psychologist"])
        request_id = await market.create_request(customer)
        application_id = await market.apply(spec, request_id)
        await client.post(f"/api/applications/{application_id}/accept", headers=customer.headers)

        resp = await market.set_status(spec, request_id, "COMPLETED")
        assert resp.status_code == 200
        assert resp.json()["status"] == "COMPLETED"

    async def test_specialist_cannot_cancel(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io", ["psychologist"])
        request_id = await market.create_request(customer)
        application_id = await market.apply(spec, request_id)
        await client.post(f"/api/applications/{application_id}/accept", headers=customer.headers)

        resp = await market.set_status(spec, request_id, "CANCELLED")
        assert resp.status_code == 400

    async def test_stranger_gets_not_found(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        stranger = await market.register("stranger@test.io")
        request_id = await market.create_request(customer)
        resp = await market.set_status(stranger, request_id, "CANCELLED")
        assert resp.status_code == 404

    async def test_unknown_request(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        resp = await client.put("/api/requests/missing/status", json={"status": "CANCELLED"}, headers=customer.headers)
        assert resp.status_code == 404
        assert resp.json() == {"error": "Заявка не найдена"}
