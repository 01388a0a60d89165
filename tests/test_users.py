from models import db, User


def current_user_id(client, headers):
    return client.get('/api/v1/auth/me', headers=headers).get_json()['data']['id']


def test_list_users_is_paginated(client, alice, bob):
    body = client.get('/api/v1/users?limit=1', headers=alice).get_json()
    assert len(body['data']) == 1
    assert body['pagination'] == {'page': 1, 'limit': 1, 'total': 2, 'total_pages': 2}


def test_get_user(client, alice, bob):
    bob_id = current_user_id(client, bob)

    response = client.get(f'/api/v1/users/{bob_id}', headers=alice)
    assert response.status_code == 200
    assert response.get_json()['data']['email'] == 'bob@example.com'

    assert client.get('/api/v1/users/9999', headers=alice).status_code == 404


def test_update_own_profile(client, alice):
    alice_id = current_user_id(client, alice)

    response = client.put(
        f'/api/v1/users/{alice_id}',
        json={'first_name': 'Alicia', 'avatar_url': 'https://example.com/new.png'},
        headers=alice
    )
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['first_name'] == 'Alicia'
    assert data['last_name'] == 'Liddell'
    assert data['avatar_url'] == 'https://example.com/new.png'


def test_update_other_user_is_forbidden(client, alice, bob):
    bob_id = current_user_id(client, bob)

    response = client.put(f'/api/v1/users/{bob_id}', json={'first_name': 'Mallory'}, headers=alice)
    assert response.status_code == 403
    assert response.get_json()['code'] == 403


def test_delete_other_user_is_forbidden(client, alice, bob):
    bob_id = current_user_id(client, bob)
    assert client.delete(f'/api/v1/users/{bob_id}', headers=alice).status_code == 403


def test_delete_self_is_soft(app, client, alice, login, register_user):
    alice_id = current_user_id(client, alice)

    response = client.delete(f'/api/v1/users/{alice_id}', headers=alice)
    assert response.status_code == 200

    # token 仍未過期,但使用者已不存在
    response = client.get('/api/v1/projects', headers=alice)
    assert response.status_code == 401
    assert response.get_json()['message'] == 'User not authenticated'

    assert login().status_code == 401

    # email 仍被佔用
    assert register_user().status_code == 409

    with app.app_context():
        user = db.session.get(User, alice_id)
        assert user is not None
        assert user.deleted_at is not None


def test_deleted_users_are_hidden(client, alice, bob):
    bob_id = current_user_id(client, bob)
    client.delete(f'/api/v1/users/{bob_id}', headers=bob)

    assert client.get(f'/api/v1/users/{bob_id}', headers=alice).status_code == 404
    body = client.get('/api/v1/users', headers=alice).get_json()
    assert body['pagination']['total'] == 1


def test_user_id_beyond_database_range_is_not_found(client, alice):
    response = client.get('/api/v1/users/99999999999999999999999', headers=alice)
    assert response.status_code == 404
    assert response.get_json()['message'] == 'User not found'


def test_update_profile_empty_avatar_is_stored_as_null(client, alice):
    alice_id = current_user_id(client, alice)
    client.put(f'/api/v1/users/{alice_id}', json={'avatar_url': 'https://example.com/a.png'}, headers=alice)

    response = client.put(f'/api/v1/users/{alice_id}', json={'avatar_url': ''}, headers=alice)
    assert response.status_code == 200
    assert response.get_json()['data']['avatar_url'] is None
