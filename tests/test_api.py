"""
Integration tests for the API.
Run: pytest tests/ -v
"""

from __future__ import annotations

import json

import pytest
from sqlalchemy import func, select

from bookshelf.database import async_session
from bookshelf.errors import UpstreamGenerationFailure
from bookshelf.models.book import Book
from bookshelf.models.recommendation import Recommendation
from conftest import register

DUNE = {"title": "Dune", "author": "Frank Herbert", "rating": 5}


async def _count_books() -> int:
    async with async_session() as s:
        return (await s.execute(select(func.count(Book.id)))).scalar_one()


class TestHealthEndpoints:
    """Test health, liveness, and metrics."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "bookshelf"

    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    @pytest.mark.asyncio
    async def test_readiness_checks_database(self, client):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json()["checks"] == {"database": "ok"}

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, client):
        await client.get("/health")
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "http_requests_total" in response.text


class TestAuthEndpoints:
    """Test registration, login, and token refresh."""

    @pytest.mark.asyncio
    async def test_register_success(self, client):
        response = await client.post(
            "/auth/register",
            json={
                "email": "test@example.com",
                "username": "testuser",
                "password": "SecurePass123",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert "access_token" in data
        assert "refresh_token" in data
        assert data["token_type"] == "bearer"

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, client):
        await register(client, "dup")
        response = await client.post(
            "/auth/register",
            json={
                "email": "dup@example.com",
                "username": "someone_else",
                "password": "SecurePass123",
            },
        )
        assert response.status_code == 409
        assert response.json()["detail"] == "Email already registered"

    @pytest.mark.asyncio
    async def test_login_success(self, client):
        await register(client, "loginuser")
        response = await client.post(
            "/auth/login",
            json={"email": "loginuser@example.com", "password": "SecurePass123"},
        )
        assert response.status_code == 200
        assert "access_token" in response.json()

    @pytest.mark.asyncio
    async def test_login_invalid_password(self, client):
        await register(client, "loginuser")
        response = await client.post(
            "/auth/login",
            json={"email": "loginuser@example.com", "password": "WrongPass"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_input_validation_short_password(self, client):
        response = await client.post(
            "/auth/register",
            json={
                "email": "val@example.com",
                "username": "valuser",
                "password": "short",
            },
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_input_validation_invalid_email(self, client):
        response = await client.post(
            "/auth/register",
            json={
                "email": "not-an-email",
                "username": "valuser2",
                "password": "SecurePass123",
            },
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_refresh_rotates_tokens(self, client):
        reg = await client.post(
            "/auth/register",
            json={
                "email": "rot@example.com",
                "username": "rotuser",
                "password": "SecurePass123",
            },
        )
        response = await client.post(
            "/auth/refresh",
            json={"refresh_token": reg.json()["refresh_token"]},
        )
        assert response.status_code == 200
        assert "access_token" in response.json()

    @pytest.mark.asyncio
    async def test_refresh_rejects_access_token(self, client):
        reg = await client.post(
            "/auth/register",
            json={
                "email": "rot2@example.com",
                "username": "rotuser2",
                "password": "SecurePass123",
            },
        )
        response = await client.post(
            "/auth/refresh",
            json={"refresh_token": reg.json()["access_token"]},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_me(self, client):
        headers = await register(client, "profile")
        response = await client.get("/auth/me", headers=headers)
        assert response.status_code == 200
        assert response.json()["username"] == "profile"

    @pytest.mark.asyncio
    async def test_me_requires_auth(self, client):
        response = await client.get("/auth/me")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"


class TestAddBook:
    """The add-book orchestrator: identity, genre enrichment, dispatch."""

    @pytest.mark.asyncio
    async def test_unauthenticated_add_inserts_nothing(self, client, dispatcher, fake_llm):
        response = await client.post("/books", json=DUNE)
        assert response.status_code == 401
        assert await _count_books() == 0
        assert dispatcher.user_ids == []
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_invalid_token_is_unauthenticated(self, client):
        response = await client.post(
            "/books", json=DUNE, headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_refresh_token_is_not_an_identity(self, client):
        reg = await client.post(
            "/auth/register",
            json={
                "email": "ref@example.com",
                "username": "refuser",
                "password": "SecurePass123",
            },
        )
        headers = {"Authorization": f"Bearer {reg.json()['refresh_token']}"}
        response = await client.post("/books", json=DUNE, headers=headers)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_detects_missing_genre(self, client, fake_llm, dispatcher):
        fake_llm.responses["detect_genre"] = "  Science Fiction\n"
        headers = await register(client, "reader")

        response = await client.post("/books", json=DUNE, headers=headers)

        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "Dune"
        assert data["genre"] == "Science Fiction"
        assert len(fake_llm.calls_for("detect_genre")) == 1
        assert dispatcher.user_ids == [data["user_id"]]

    @pytest.mark.asyncio
    async def test_explicit_genre_skips_detection(self, client, fake_llm, dispatcher):
        headers = await register(client, "reader")
        response = await client.post(
            "/books", json={**DUNE, "genre": "Space Opera"}, headers=headers
        )
        assert response.status_code == 201
        assert response.json()["genre"] == "Space Opera"
        assert fake_llm.calls_for("detect_genre") == []
        assert len(dispatcher.user_ids) == 1

    @pytest.mark.asyncio
    async def test_blank_genre_counts_as_missing(self, client, fake_llm):
        fake_llm.responses["detect_genre"] = "Classic"
        headers = await register(client, "reader")
        response = await client.post("/books", json={**DUNE, "genre": "   "}, headers=headers)
        assert response.json()["genre"] == "Classic"

    @pytest.mark.asyncio
    async def test_empty_classification_falls_back_to_fiction(self, client, fake_llm):
        fake_llm.responses["detect_genre"] = ""
        headers = await register(client, "reader")
        response = await client.post("/books", json=DUNE, headers=headers)
        assert response.status_code == 201
        assert response.json()["genre"] == "Fiction"

    @pytest.mark.asyncio
    async def test_classifier_failure_fails_whole_add(self, client, fake_llm, dispatcher):
        fake_llm.responses["detect_genre"] = UpstreamGenerationFailure()
        headers = await register(client, "reader")

        response = await client.post("/books", json=DUNE, headers=headers)

        assert response.status_code == 502
        assert await _count_books() == 0
        assert dispatcher.user_ids == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6])
    async def test_rating_out_of_range(self, client, rating):
        headers = await register(client, "reader")
        response = await client.post("/books", json={**DUNE, "rating": rating}, headers=headers)
        assert response.status_code == 422
        assert await _count_books() == 0


class TestLibrary:
    """List, edit and remove are scoped to the owner."""

    @pytest.mark.asyncio
    async def test_list_requires_auth(self, client):
        response = await client.get("/books")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_list_only_own_books(self, client):
        alice = await register(client, "alice")
        bob = await register(client, "bob")
        await client.post("/books", json={**DUNE, "genre": "SF"}, headers=alice)
        await client.post(
            "/books",
            json={"title": "Emma", "author": "Jane Austen", "rating": 4, "genre": "Romance"},
            headers=bob,
        )

        response = await client.get("/books", headers=alice)

        assert response.status_code == 200
        assert [b["title"] for b in response.json()] == ["Dune"]

    @pytest.mark.asyncio
    async def test_edit_own_book(self, client):
        headers = await register(client, "reader")
        created = await client.post("/books", json={**DUNE, "genre": "SF"}, headers=headers)
        book_id = created.json()["id"]

        response = await client.patch(f"/books/{book_id}", json={"rating": 3}, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["rating"] == 3
        assert data["title"] == "Dune"
        assert data["genre"] == "SF"

    @pytest.mark.asyncio
    async def test_edit_foreign_book_is_rejected(self, client):
        alice = await register(client, "alice")
        bob = await register(client, "bob")
        created = await client.post("/books", json={**DUNE, "genre": "SF"}, headers=alice)
        book_id = created.json()["id"]

        response = await client.patch(
            f"/books/{book_id}", json={"title": "Hijacked"}, headers=bob
        )

        assert response.status_code == 404
        books = (await client.get("/books", headers=alice)).json()
        assert books[0]["title"] == "Dune"

    @pytest.mark.asyncio
    async def test_edit_missing_book(self, client):
        headers = await register(client, "reader")
        response = await client.patch("/books/99999", json={"rating": 2}, headers=headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_edit_rejects_bad_rating(self, client):
        headers = await register(client, "reader")
        created = await client.post("/books", json={**DUNE, "genre": "SF"}, headers=headers)
        response = await client.patch(
            f"/books/{created.json()['id']}", json={"rating": 9}, headers=headers
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_remove_own_book(self, client):
        headers = await register(client, "reader")
        created = await client.post("/books", json={**DUNE, "genre": "SF"}, headers=headers)

        response = await client.delete(f"/books/{created.json()['id']}", headers=headers)

        assert response.status_code == 204
        assert (await client.get("/books", headers=headers)).json() == []

    @pytest.mark.asyncio
    async def test_remove_foreign_book_is_rejected(self, client):
        alice = await register(client, "alice")
        bob = await register(client, "bob")
        created = await client.post("/books", json={**DUNE, "genre": "SF"}, headers=alice)

        response = await client.delete(f"/books/{created.json()['id']}", headers=bob)

        assert response.status_code == 404
        assert await _count_books() == 1

    @pytest.mark.asyncio
    async def test_remove_requires_auth(self, client):
        response = await client.delete("/books/1")
        assert response.status_code == 401


class TestSearchEndpoint:
    """Title/author suggestions while typing."""

    @pytest.mark.asyncio
    async def test_short_query_skips_model(self, client, fake_llm):
        headers = await register(client, "reader")
        response = await client.get("/books/search", params={"q": "d"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["suggestions"] == []
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_returns_suggestions(self, client, fake_llm):
        fake_llm.responses["search_books"] = json.dumps(
            {"suggestions": [{"title": "Dune", "author": "Frank Herbert"}]}
        )
        headers = await register(client, "reader")

        response = await client.get("/books/search", params={"q": "dun"}, headers=headers)

        assert response.status_code == 200
        assert response.json() == {
            "query": "dun",
            "suggestions": [{"title": "Dune", "author": "Frank Herbert"}],
        }

    @pytest.mark.asyncio
    async def test_malformed_output_yields_empty_list(self, client, fake_llm):
        fake_llm.responses["search_books"] = "Sure! Here are some books: Dune"
        headers = await register(client, "reader")
        response = await client.get("/books/search", params={"q": "dune"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["suggestions"] == []

    @pytest.mark.asyncio
    async def test_requires_auth(self, client):
        response = await client.get("/books/search", params={"q": "dune"})
        assert response.status_code == 401


class TestRecommendationEndpoints:
    """Recent recommendations and manual regeneration."""

    @staticmethod
    async def _seed(user_id: int, timestamps: list[int]) -> None:
        async with async_session() as s:
            for i, ts in enumerate(timestamps):
                s.add(
                    Recommendation(
                        user_id=user_id,
                        book_title=f"Book {i}",
                        reason="Because",
                        timestamp=ts,
                    )
                )
            await s.commit()

    @pytest.mark.asyncio
    async def test_returns_three_most_recent(self, client):
        headers = await register(client, "reader")
        user_id = (await client.get("/auth/me", headers=headers)).json()["id"]
        await self._seed(user_id, [1000, 5000, 3000, 2000, 4000])

        response = await client.get("/recommendations", headers=headers)

        assert response.status_code == 200
        recs = response.json()["recommendations"]
        assert [r["timestamp"] for r in recs] == [5000, 4000, 3000]

    @pytest.mark.asyncio
    async def test_other_users_recommendations_hidden(self, client):
        alice = await register(client, "alice")
        bob = await register(client, "bob")
        alice_id = (await client.get("/auth/me", headers=alice)).json()["id"]
        await self._seed(alice_id, [1000])

        response = await client.get("/recommendations", headers=bob)

        assert response.json()["recommendations"] == []

    @pytest.mark.asyncio
    async def test_list_requires_auth(self, client):
        response = await client.get("/recommendations")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_manual_generation_is_queued(self, client, dispatcher):
        headers = await register(client, "reader")
        user_id = (await client.get("/auth/me", headers=headers)).json()["id"]

        response = await client.post("/recommendations/generate", headers=headers)

        assert response.status_code == 202
        assert response.json()["task_id"] == "task-123"
        assert dispatcher.user_ids == [user_id]

    @pytest.mark.asyncio
    async def test_manual_generation_broker_down(self, client, dispatcher):
        dispatcher.task_id = None
        headers = await register(client, "reader")
        response = await client.post("/recommendations/generate", headers=headers)
        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_manual_generation_requires_auth(self, client, dispatcher):
        response = await client.post("/recommendations/generate")
        assert response.status_code == 401
        assert dispatcher.user_ids == []
