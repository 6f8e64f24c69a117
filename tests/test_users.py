"""Tests for user administration and notification preferences."""

from bson import ObjectId

from envirotrack.models.user import User


class TestUserAdministration:

    def test_list_hides_inactive_by_default(self, client, admin_headers, make_user):
        inactive = make_user(is_active=False)
        ids = [u['id'] for u in client.get('/api/users/', headers=admin_headers).get_json()]
        assert inactive.id not in ids

        ids = [u['id'] for u in client.get('/api/users/?include_inactive=true', headers=admin_headers).get_json()]
        assert inactive.id in ids

    def test_create_user_with_licences(self, client, admin_headers):
        response = client.post('/api/users/', headers=admin_headers, json={
            'email': 'assessor@example.com',
            'password': 'password123',
            'first_name': 'Sam',
            'last_name': 'Assessor',
            'role': 'manager',
            'licences': [{'state': 'ACT', 'licence_number': 'AA12345', 'licence_type': 'LAA'}],
        })
        assert response.status_code == 201
        user = User.find_by_email('assessor@example.com')
        assert user.role == 'manager'
        assert user.laa_licence_number() == 'AA12345'

    def test_create_user_rejects_unknown_role(self, client, admin_headers):
        response = client.post('/api/users/', headers=admin_headers, json={
            'email': 'x@example.com', 'password': 'password123',
            'first_name': 'X', 'last_name': 'Y', 'role': 'superuser',
        })
        assert response.status_code == 400

    def test_get_user_by_id(self, client, employee, employee_headers, admin):
        assert client.get(f'/api/users/{employee.id}', headers=employee_headers).status_code == 200
        assert client.get(f'/api/users/{admin.id}', headers=employee_headers).status_code == 200

    def test_update_user(self, client, admin_headers, employee):
        response = client.put(f'/api/users/{employee.id}', headers=admin_headers,
                              json={'phone': '0411 111 111', 'role': 'manager'})
        assert response.status_code == 200
        assert User.find_by_id(employee.id).role == 'manager'

    def test_update_rejects_non_text_email(self, client, admin_headers, employee):
        response = client.put(f'/api/users/{employee.id}', headers=admin_headers, json={'email': 42})
        assert response.status_code == 400
        assert User.find_by_id(employee.id).email == employee.email

    def test_update_unknown_user(self, client, admin_headers):
        response = client.put('/api/users/64b000000000000000000000', headers=admin_headers, json={})
        assert response.status_code == 404

    def test_delete_deactivates(self, client, admin_headers, employee):
        assert client.delete(f'/api/users/{employee.id}', headers=admin_headers).status_code == 200
        assert User.find_by_id(employee.id).is_active is False

    def test_cannot_deactivate_self(self, client, admin, admin_headers):
        assert client.delete(f'/api/users/{admin.id}', headers=admin_headers).status_code == 400

    def test_reset_password(self, client, admin_headers, employee):
        response = client.post(f'/api/users/{employee.id}/reset-password', headers=admin_headers,
                               json={'password': 'brandnew1'})
        assert response.status_code == 200
        assert User.find_by_id(employee.id).check_password('brandnew1')

    def test_reset_password_ends_sessions(self, client, db, admin_headers, employee):
        client.post(f'/api/users/{employee.id}/reset-password', headers=admin_headers,
                    json={'password': 'brandnew1'})
        marker = db.token_blacklist.find_one({'scope': 'user', 'user_id': ObjectId(employee.id)})
        assert marker['reason'] == 'admin_reset'

    def test_create_with_password_needs_no_setup(self, client, admin_headers, outbox):
        response = client.post('/api/users/', headers=admin_headers, json={
            'email': 'ready@example.com', 'password': 'password123', 'first_name': 'R', 'last_name': 'Eady',
        })
        assert response.status_code == 201
        assert response.get_json()['password_set'] is True
        assert outbox == []

    def test_manager_cannot_create_users(self, client, manager_headers):
        assert client.post('/api/users/', headers=manager_headers, json={}).status_code == 403


class TestPreferences:

    def test_defaults(self, client, employee_headers):
        response = client.get('/api/users/preferences/me', headers=employee_headers)
        assert response.get_json() == {'notifications': {'email': False, 'sms': False, 'system_updates': False}}

    def test_update(self, client, employee_headers):
        response = client.put('/api/users/preferences/me', headers=employee_headers,
                              json={'notifications': {'sms': True, 'unknown': True}})
        assert response.status_code == 200
        assert response.get_json()['notifications'] == {'email': False, 'sms': True, 'system_updates': False}
