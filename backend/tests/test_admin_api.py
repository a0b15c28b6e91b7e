# Overview: Pytest coverage for admin user management and self-service password changes.

import pytest

from invoicer.models import User
from invoicer.services import auth_service, invoice_service


def _login(client, username: str, password: str = "Password123!"):
    response = client.post('/api/auth/login', json={"username": username, "password": password})
    return response.json.get("token") if response.status_code == 200 else None


def _bearer(token: str) -> dict:
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(client, admin_user):
    return _bearer(_login(client, admin_user.username))


class TestAdminAccess:
    @pytest.mark.parametrize("method, path", [
        ("get", '/api/admin/users'),
        ("post", '/api/admin/register-user'),
        ("put", '/api/admin/users/1'),
        ("delete", '/api/admin/users/1'),
    ])
    def test_non_admin_forbidden(self, client, headers_a, method, path):
        response = getattr(client, method)(path, json={}, headers=headers_a)
        assert response.status_code == 403

    def test_anonymous_rejected(self, client, db_session):
        assert client.get('/api/admin/users').status_code == 401


class TestRegisterUser:
    def test_generated_password_forces_change(self, client, admin_headers):
        response = client.post('/api/admin/register-user', json={
            "email": "new@example.com", "full_name": "New Person",
        }, headers=admin_headers)

        assert response.status_code == 201
        user = response.json["user"]
        assert user["username"] == "new@example.com"
        assert user["name"] == "New Person"
        assert user["role"] == "USER"
        assert user["must_change_password"] is True

        temp_password = response.json["temp_password"]
        auth_service.validate_password_strength(temp_password)
        assert _login(client, "new@example.com", temp_password)

    def test_supplied_password_is_not_echoed(self, client, admin_headers):
        response = client.post('/api/admin/register-user', json={
            "email": "x@example.com", "username": "xavier", "password": "Temp1234!x", "role": "admin",
        }, headers=admin_headers)

        assert response.status_code == 201
        assert "temp_password" not in response.json
        assert response.json["user"]["role"] == "ADMIN"

    @pytest.mark.parametrize("payload", [
        {},
        {"email": 5},
        {"email": "weak@example.com", "password": "short"},
        {"email": "role@example.com", "role": "ROOT"},
        {"email": "owner_a@example.com"},
    ])
    def test_rejected(self, client, admin_headers, owner_a, payload):
        assert client.post('/api/admin/register-user', json=payload, headers=admin_headers).status_code == 400


class TestManageUsers:
    def test_list_hides_inactive_by_default(self, client, db_session, admin_headers, owner_a):
        owner_a.is_active = False
        db_session.commit()

        active = client.get('/api/admin/users', headers=admin_headers).json
        everyone = client.get('/api/admin/users?include_inactive=true', headers=admin_headers).json

        assert "owner_a" not in [u["username"] for u in active["users"]]
        assert everyone["count"] == active["count"] + 1

    def test_update_role_and_name(self, client, admin_headers, owner_a):
        response = client.put(f'/api/admin/users/{owner_a.id}', json={"role": "admin", "name": "Alice"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json["user"]["role"] == "ADMIN"
        assert response.json["user"]["name"] == "Alice"

    def test_update_rules(self, client, admin_headers, admin_user, owner_a):
        assert client.put(f'/api/admin/users/{owner_a.id}', json={"role": "ROOT"}, headers=admin_headers).status_code == 400
        assert client.put(f'/api/admin/users/{admin_user.id}', json={"role": "USER"}, headers=admin_headers).status_code == 400
        assert client.put('/api/admin/users/9999', json={"name": "x"}, headers=admin_headers).status_code == 404

    def test_set_password_revokes_sessions(self, client, db_session, admin_headers, owner_a):
        old_token = _login(client, "owner_a")

        response = client.put(f'/api/admin/users/{owner_a.id}/password', json={
            "password": "Reset1234!", "force_change": True,
        }, headers=admin_headers)

        assert response.status_code == 200
        assert response.json["sessions_revoked"] == 1
        assert response.json["user"]["must_change_password"] is True
        assert client.get('/api/auth/me', headers=_bearer(old_token)).status_code == 401
        assert _login(client, "owner_a") is None
        assert _login(client, "owner_a", "Reset1234!")

    def test_set_password_validation(self, client, admin_headers, owner_a):
        url = f'/api/admin/users/{owner_a.id}/password'
        assert client.put(url, json={}, headers=admin_headers).status_code == 400
        assert client.put(url, json={"password": "weak"}, headers=admin_headers).status_code == 400
        assert _login(client, "owner_a")

    def test_clear_password_flag(self, client, db_session, admin_headers, owner_a):
        owner_a.must_change_password = True
        db_session.commit()

        response = client.delete(f'/api/admin/users/{owner_a.id}/password', headers=admin_headers)

        assert response.status_code == 200
        assert response.json["user"]["must_change_password"] is False

    def test_deactivate_and_reactivate(self, client, admin_headers, admin_user, owner_a):
        token = _login(client, "owner_a")

        assert client.post(f'/api/admin/users/{admin_user.id}/deactivate', headers=admin_headers).status_code == 400

        response = client.post(f'/api/admin/users/{owner_a.id}/deactivate', headers=admin_headers)
        assert response.status_code == 200
        assert response.json["sessions_revoked"] == 1
        assert client.get('/api/auth/me', headers=_bearer(token)).status_code == 401
        assert _login(client, "owner_a") is None
        assert client.post(f'/api/admin/users/{owner_a.id}/deactivate', headers=admin_headers).status_code == 400

        assert client.post(f'/api/admin/users/{owner_a.id}/reactivate', headers=admin_headers).status_code == 200
        assert _login(client, "owner_a")

    def test_delete_user_without_data(self, client, db_session, admin_headers, owner_b):
        _login(client, "owner_b")
        owner_b_id = owner_b.id

        response = client.delete(f'/api/admin/users/{owner_b_id}', headers=admin_headers)

        assert response.status_code == 200
        db_session.expire_all()
        assert db_session.get(User, owner_b_id) is None

    def test_delete_refused_for_owner_of_documents(self, client, db_session, admin_headers, owner_a):
        invoice_service.create_document(owner_a.id, {})

        response = client.delete(f'/api/admin/users/{owner_a.id}', headers=admin_headers)

        assert response.status_code == 400
        assert response.json["details"]["invoices"] == 1
        assert response.json["details"]["sequence_counters"] == 1

    def test_cannot_delete_self(self, client, admin_headers, admin_user):
        assert client.delete(f'/api/admin/users/{admin_user.id}', headers=admin_headers).status_code == 400


class TestChangePassword:
    def test_requires_old_password(self, client, headers_a):
        url = '/api/users/change-password'
        assert client.post(url, json={"new_password": "Newpass123!"}, headers=headers_a).status_code == 400
        assert client.post(url, json={
            "old_password": "wrong", "new_password": "Newpass123!",
        }, headers=headers_a).status_code == 400
        assert client.post(url, json={
            "old_password": "Password123!", "new_password": "weak",
        }, headers=headers_a).status_code == 400
        assert client.post(url, json={"old_password": 5, "new_password": "Newpass123!"}, headers=headers_a).status_code == 400

    def test_change_keeps_current_session_only(self, client, headers_a, owner_a):
        other_token = _login(client, "owner_a")

        response = client.post('/api/users/change-password', json={
            "old_password": "Password123!", "new_password": "Newpass123!",
        }, headers=headers_a)

        assert response.status_code == 200
        assert client.get('/api/auth/me', headers=headers_a).status_code == 200
        assert client.get('/api/auth/me', headers=_bearer(other_token)).status_code == 401
        assert _login(client, "owner_a", "Newpass123!")

    def test_temporary_password_skips_old_check(self, client, db_session, owner_a):
        owner_a.must_change_password = True
        db_session.commit()
        headers = _bearer(_login(client, "owner_a"))

        response = client.post('/api/users/change-password', json={"new_password": "Newpass123!"}, headers=headers)

        assert response.status_code == 200
        assert response.json["user"]["must_change_password"] is False
