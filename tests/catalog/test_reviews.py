"""Tests for reviews and the specialist rating."""

from httpx import AsyncClient


async def _completed_work(client: AsyncClient, market, customer, specialist) -> str:
    request_id = await market.create_request(customer)
    application_id = await market.apply(specialist, request_id)
    resp = await client.post(f"/api/applications/{application_id}/accept", headers=customer.headers)
    assert resp.status_code == 200, resp.text
    resp = await market.set_status(customer, request_id, "COMPLETED")
    assert resp.status_code == 200, resp.text
    return request_id


class TestCreateReview:
    async def test_requires_completed_work(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io", ["psychologist"])
        resp = await client.post(
            "/api/reviews",
            json={"specialistId": spec.user_id, "rating": 5, "comment": "Отличная работа, спасибо"},
            headers=customer.headers,
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "Отзыв можно оставить только после завершённой работы со специалистом"

    async def test_in_progress_work_is_not_enough(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io", ["psychologist"])
        request_id = await market.create_request(customer)
        application_id = await market.apply(spec, request_id)
        await client.post(f"/api/applications/{application_id}/accept", headers=customer.headers)

        resp = await client.post(
            "/api/reviews", json={"specialistId": spec.user_id, "rating": 4}, headers=customer.headers
        )
        assert resp.status_code == 403

    async def test_create_after_completion(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io", display_name="Мария")
        spec = await market.specialist("spec@test.io", ["psychologist"])
        request_id = await _completed_work(client, market, customer, spec)

        resp = await client.post(
            "/api/reviews",
            json={
                "specialistId": spec.user_id,
                "requestId": request_id,
                "rating": 5,
                "comment": "Очень помогла, рекомендую",
            },
            headers=customer.headers,
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["success"] is True
        assert data["review"]["rating"] == 5
        assert data["review"]["clientName"] == "Мария"

        card = (await client.get(f"/api/specialists/{spec.user_id}")).json()
        assert card["averageRating"] == 5.0
        assert card["totalReviews"] == 1

    async def test_duplicate_review(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io", ["psychologist"])
        await _completed_work(client, market, customer, spec)
        body = {"specialistId": spec.user_id, "rating": 5}

        assert (await client.post("/api/reviews", json=body, headers=customer.headers)).status_code == 201
        resp = await client.post("/api/reviews", json=body, headers=customer.headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Вы уже оставили отзыв по этой заявке"

    async def test_rating_bounds(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io")
        resp = await client.post(
            "/api/reviews", json={"specialistId": spec.user_id, "rating": 6}, headers=customer.headers
        )
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "rating"

    async def test_comment_too_short(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        spec = await market.specialist("spec@test.io")
        resp = await client.post(
            "/api/reviews",
            json={"specialistId": spec.user_id, "rating": 5, "comment": "ok"},
            headers=customer.headers,
        )
        assert resp.status_code == 400

    async def test_unknown_specialist(self, client: AsyncClient, market) -> None:
        customer = await market.register("client@test.io")
        resp = await client.post(
            "/api/reviews", json={"specialistId": "nobody", "rating": 5}, headers=customer.headers
        )
        assert resp.status_code == 404


class TestListReviews:
    async def test_reviews_and_stats(self, client: AsyncClient, market) -> None:
        spec = await market.specialist("spec@test.io", ["psychologist"])
        first = await market.register("first@test.io", display_name="Первый")
        second = await market.register("second@test.io", display_name="Второй")
        await _completed_work(client, market, first, spec)
        await _completed_work(client, market, second, spec)

        await client.post("/api/reviews", json={"specialistId": spec.user_id, "rating": 5}, headers=first.headers)
        await client.post("/api/reviews", json={"specialistId": spec.user_id, "rating": 4}, headers=second.headers)

        resp = await client.get(f"/api/specialists/{spec.user_id}/reviews")
        assert resp.status_code == 200
        data = resp.json()
        assert data["stats"] == {"averageRating": 4.5, "totalReviews": 2}
        assert {r["clientName"] for r in data["reviews"]} == {"Первый", "Второй"}

    async def test_no_reviews(self, client: AsyncClient, market) -> None:
        spec = await market.specialist("spec@test.io")
        resp = await client.get(f"/api/specialists/{spec.user_id}/reviews")
        assert resp.json() == {"reviews": [], "stats": {"averageRating": 0.0, "totalReviews": 0}}

    async def test_unknown_specialist(self, client: AsyncClient) -> None:
        assert (await client.get("/api/specialists/nobody/reviews")).status_code == 404
