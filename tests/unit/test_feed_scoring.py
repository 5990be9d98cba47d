"""Tests for the explainable feed relevance score."""

from specmarket.db.models import PreferredFormat, Request, RequestStatus, SpecialistProfile
from specmarket.matching.service import score_request


def _request(**overrides) -> Request:
    fields = {
        "id": "req-1",
        "client_user_id": "client-1",
        "category_id": "cat-psy",
        "title": "Нужна консультация",
        "description": "Описание запроса клиента",
        "preferred_format": PreferredFormat.ANY,
        "status": RequestStatus.OPEN,
        "city": None,
        "budget_min_cents": None,
        "budget_max_cents": None,
    }
    fields.update(overrides)
    return Request(**fields)


def _profile(**overrides) -> SpecialistProfile:
    fields = {"user_id": "spec-1", "display_name": "Анна", "city": None, "price_min_cents": None}
    fields.update(overrides)
    return SpecialistProfile(**fields)


class TestScoreRequest:
    def test_no_signals(self) -> None:
        item = score_request(_request(category_id="other"), _profile(), set())
        assert item.relevance_score == 0
        assert item.relevance_reasons == []

    def test_same_city(self) -> None:
        item = score_request(_request(city="Москва"), _profile(city="Москва"), set())
        assert item.relevance_score == 3
        assert item.relevance_reasons == ["В вашем городе"]

    def test_budget_covers_price(self) -> None:
        item = score_request(_request(budget_min_cents=500000), _profile(price_min_cents=300000), set())
        assert item.relevance_score == 2
        assert item.relevance_reasons == ["Подходящий бюджет"]

    def test_budget_below_price(self) -> None:
        item = score_request(_request(budget_min_cents=100000), _profile(price_min_cents=300000), set())
        assert item.relevance_score == 0

    def test_own_category(self) -> None:
        item = score_request(_request(), _profile(), {"cat-psy"})
        assert item.relevance_score == 1
        assert item.relevance_reasons == ["Ваша категория"]

    def test_all_signals_add_up(self) -> None:
        item = score_request(
            _request(city="Казань", budget_min_cents=500000),
            _profile(city="Казань", price_min_cents=400000),
            {"cat-psy"},
        )
        assert item.relevance_score == 6
        assert len(item.relevance_reasons) == 3

    def test_city_mismatch_scores_nothing(self) -> None:
        item = score_request(_request(city="Казань"), _profile(city="Москва"), set())
        assert item.relevance_score == 0
