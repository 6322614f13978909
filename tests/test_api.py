"""Tests for the REST routes."""

import pytest
from starlette.testclient import TestClient

from lending_library.api import ROUTES, create_app
from lending_library.database.session import get_db_manager


@pytest.fixture
def client(mock_get_session):
    with TestClient(create_app()) as test_client:
        yield test_client


def headers(user, role: str = "student") -> dict[str, str]:
    return {"X-User-Id": str(user.id), "X-User-Role": role}


class TestAuthentication:
    def test_missing_user_header(self, client, make_book):
        response = client.post("/loans", json={"book_id": make_book().id})
        assert response.status_code == 401
        assert response.json()["error"]["kind"] == "unauthenticated"

    def test_non_numeric_user_header(self, client):
        response = client.get("/loans", headers={"X-User-Id": "alice"})
        assert response.status_code == 401

    def test_catalog_is_public(self, client, make_book):
        make_book(title="Gilead")
        response = client.get("/books", params={"query": "gilead"})
        assert response.status_code == 200
        assert response.json()["data"]["total"] == 1


class TestLoanRoutes:
    def test_request_validate_return(self, client, student, admin, make_book):
        book = make_book(total_copies=1)

        response = client.post("/loans", json={"book_id": book.id}, headers=headers(student))
        assert response.status_code == 201
        loan_id = response.json()["data"]["loan"]["id"]

        response = client.patch(f"/loans/{loan_id}/validate", headers=headers(student))
        assert response.status_code == 403

        response = client.patch(f"/loans/{loan_id}/validate", headers=headers(admin, "admin"))
        assert response.status_code == 200
        assert response.json()["data"]["loan"]["status"] == "active"

        response = client.get(f"/books/{book.id}")
        assert response.json()["data"]["availability"]["available_copies"] == 0

        response = client.patch(
            f"/loans/{loan_id}/return", json={"condition": "good"}, headers=headers(student)
        )
        assert response.status_code == 200
        assert response.json()["data"]["loan"]["status"] == "returned"

        response = client.patch(f"/loans/{loan_id}/return", headers=headers(student))
        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "invalid_state"

    def test_unknown_loan(self, client, admin):
        response = client.get("/loans/4242", headers=headers(admin, "admin"))
        assert response.status_code == 404

    def test_validation_error(self, client, student):
        response = client.post("/loans", json={"book_id": "abc"}, headers=headers(student))
        assert response.status_code == 422

    def test_malformed_body(self, client, student):
        response = client.post(
            "/loans",
            content=b"{not json",
            headers={**headers(student), "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "validation"

    def test_my_loans_and_summary(self, client, student, other_student, make_book, make_loan):
        make_loan(student, make_book())
        make_loan(other_student, make_book())

        response = client.get("/loans/me", headers=headers(student))
        assert response.json()["data"]["total"] == 1

        response = client.get("/loans/me/summary", headers=headers(student))
        assert response.json()["data"]["active"] == 1

    def test_eligibility(self, client, student, make_book):
        book = make_book()
        response = client.get(f"/loans/book/{book.id}/eligibility", headers=headers(student))
        assert response.json()["data"]["can_borrow"] is True

    def test_admin_listing_with_query_filters(self, client, admin, student, make_book, make_loan):
        make_loan(student, make_book())
        response = client.get(
            "/loans", params={"status": "active", "page_size": "5"}, headers=headers(admin, "admin")
        )
        assert response.status_code == 200
        assert response.json()["data"]["total"] == 1


class TestUserRoutes:
    def test_admin_manages_accounts(self, client, admin):
        response = client.post(
            "/users",
            json={"first_name": "Mary", "last_name": "Jackson", "email": "mjackson@example.com"},
            headers=headers(admin, "admin"),
        )
        assert response.status_code == 201
        user_id = response.json()["data"]["user"]["id"]

        response = client.get("/users", params={"role": "student"}, headers=headers(admin, "admin"))
        assert [u["id"] for u in response.json()["data"]["items"]] == [user_id]

        response = client.patch(f"/users/{user_id}/deactivate", headers=headers(admin, "admin"))
        assert response.status_code == 200
        assert response.json()["data"]["user"]["is_active"] is False

        response = client.get(f"/users/{user_id}", headers={"X-User-Id": str(user_id)})
        assert response.json()["data"]["user"]["is_active"] is False

    def test_students_cannot_register_accounts(self, client, student):
        response = client.post(
            "/users",
            json={"first_name": "E", "last_name": "Ve", "email": "eve@example.com"},
            headers=headers(student),
        )
        assert response.status_code == 403

    def test_eligibility_of_deactivated_account(self, client, admin, student, make_book):
        client.patch(f"/users/{student.id}/deactivate", headers=headers(admin, "admin"))

        response = client.get(
            f"/loans/book/{make_book().id}/eligibility", headers=headers(student)
        )
        assert response.status_code == 200
        assert response.json()["data"]["code"] == "user_not_found"


class TestBookStatusRoute:
    def test_set_status(self, client, admin, make_book):
        book = make_book()
        response = client.patch(
            f"/books/{book.id}/status", json={"status": "lost"}, headers=headers(admin, "admin")
        )
        assert response.status_code == 200
        assert response.json()["data"]["book"]["status"] == "lost"

        response = client.get(f"/books/{book.id}")
        assert response.json()["data"]["availability"]["status"] == "lost"


class TestHealth:
    def test_healthy_database(self, client, test_database_url):
        get_db_manager(test_database_url).init_database()

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": True}


def test_routes_are_unique():
    keys = [(path, method) for path, methods, _ in ROUTES for method in methods]
    assert len(keys) == len(set(keys))
