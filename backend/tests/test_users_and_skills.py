from sqlmodel import Session, select

from skillnet import models


def test_adding_same_skill_twice_updates_level(client, register, engine):
    headers, body = register()
    r = client.post('/users/skills', json={'skillName': 'Go', 'proficiencyLevel': 3}, headers=headers)
    assert r.status_code == 200
    r = client.post('/users/skills', json={'skillName': 'go', 'proficiencyLevel': 5}, headers=headers)
    assert r.json() == {'skillName': 'go', 'proficiencyLevel': 5}
    with Session(engine) as session:
        rows = session.exec(select(models.UserSkill).where(models.UserSkill.user_id == body['user']['id'])).all()
    assert len(rows) == 1
    assert rows[0].proficiency_level == 5


def test_skill_level_must_be_in_range(client, register):
    headers, _ = register()
    r = client.post('/users/skills', json={'skillName': 'Go', 'proficiencyLevel': 6}, headers=headers)
    assert r.status_code == 400


def test_removing_unknown_skill_is_noop(client, register):
    headers, _ = register()
    client.post('/users/skills', json={'skillName': 'Rust', 'proficiencyLevel': 2}, headers=headers)
    r = client.delete('/users/skills/Python', headers=headers)
    assert r.status_code == 200
    skills = client.get('/users/profile', headers=headers).json()['skills']
    assert skills == [{'skillName': 'Rust', 'proficiencyLevel': 2}]
    client.delete('/users/skills/rust', headers=headers)
    assert client.get('/users/profile', headers=headers).json()['skills'] == []


def test_users_by_skill_is_case_insensitive(client, register):
    ada, _ = register()
    bob, _ = register('bob@example.com', 'Bob')
    client.post('/users/skills', json={'skillName': 'Python', 'proficiencyLevel': 4}, headers=ada)
    client.post('/users/skills', json={'skillName': 'Java', 'proficiencyLevel': 4}, headers=bob)
    r = client.get('/users/by-skill/PYTHON')
    assert [u['name'] for u in r.json()] == ['Ada']


def test_search_users_by_name_email_and_skill(client, register):
    ada, _ = register()
    register('bob@builder.io', 'Bob')
    client.post('/users/skills', json={'skillName': 'Kubernetes', 'proficiencyLevel': 3}, headers=ada)
    assert [u['name'] for u in client.get('/users/search', params={'searchTerm': 'bob'}).json()] == ['Bob']
    assert [u['name'] for u in client.get('/users/search', params={'searchTerm': 'BUILDER'}).json()] == ['Bob']
    assert [u['name'] for u in client.get('/users/search', params={'searchTerm': 'kube'}).json()] == ['Ada']
    assert [u['name'] for u in client.get('/users/search', params={'searchTerm': 'example'}).json()] == ['Ada']


def test_search_users_requires_term(client):
    r = client.get('/users/search')
    assert r.status_code == 400
    assert r.json() == {'message': 'Search term is required'}


def test_update_profile(client, register):
    headers, _ = register()
    r = client.put('/users/profile', json={
        'name': 'Ada L.',
        'avatar': 'https://example.com/a.png',
        'location': {'lat': 51.5, 'lng': -0.12, 'address': 'London'},
    }, headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body['name'] == 'Ada L.'
    assert body['location'] == {'lat': 51.5, 'lng': -0.12, 'address': 'London'}
    r = client.put('/users/profile', json={'name': '  '}, headers=headers)
    assert r.json()['name'] == 'Ada L.'


def test_viewing_profile_records_views(client, register):
    ada, body = register()
    bob, _ = register('bob@example.com', 'Bob')
    user_id = body['user']['id']
    first = client.get(f'/users/{user_id}', headers=bob)
    assert first.status_code == 200
    assert first.json()['profileViews'] == 0
    client.get(f'/users/{user_id}')
    assert client.get('/users/profile', headers=ada).json()['profileViews'] == 2


def test_unknown_user_returns_404(client):
    r = client.get('/users/999')
    assert r.status_code == 404
    assert r.json() == {'message': 'User not found'}


def test_profile_reports_project_count(client, register):
    headers, _ = register()
    client.post('/projects', json={
        'title': 'CLI', 'description': 'A tool', 'category': 'Tools', 'technology': 'Go', 'domain': 'Dev',
    }, headers=headers)
    assert client.get('/users/profile', headers=headers).json()['projectCount'] == 1


def test_delete_account_cascades(client, register, engine):
    ada, body = register()
    bob, _ = register('bob@example.com', 'Bob')
    ada_id = body['user']['id']
    client.post('/users/skills', json={'skillName': 'Go', 'proficiencyLevel': 3}, headers=ada)
    client.post('/projects', json={
        'title': 'CLI', 'description': 'A tool', 'category': 'Tools', 'technology': 'Go', 'domain': 'Dev',
    }, headers=ada)
    bob_id = client.get('/users/profile', headers=bob).json()['id']
    client.get(f'/users/{bob_id}', headers=ada)

    r = client.delete('/users/profile', headers=ada)
    assert r.status_code == 200
    assert client.get('/users/profile', headers=ada).status_code == 401
    with Session(engine) as session:
        assert session.exec(select(models.UserSkill)).all() == []
        assert session.exec(select(models.Project)).all() == []
        assert session.exec(select(models.RefreshToken).where(models.RefreshToken.user_id == ada_id)).all() == []
        views = session.exec(select(models.ProfileView)).all()
    assert len(views) == 1
    assert views[0].viewer_id is None


def test_non_ascii_skill_is_upserted_and_removed(client, register, engine):
    headers, body = register()
    r = client.post('/users/skills', json={'skillName': 'Ökonomie', 'proficiencyLevel': 3}, headers=headers)
    assert r.status_code == 200
    r = client.post('/users/skills', json={'skillName': 'Ökonomie', 'proficiencyLevel': 5}, headers=headers)
    assert r.status_code == 200
    r = client.post('/users/skills', json={'skillName': 'ökonomie', 'proficiencyLevel': 4}, headers=headers)
    assert r.json() == {'skillName': 'ökonomie', 'proficiencyLevel': 4}
    with Session(engine) as session:
        rows = session.exec(select(models.UserSkill).where(models.UserSkill.user_id == body['user']['id'])).all()
    assert [(s.skill_name, s.proficiency_level) for s in rows] == [('ökonomie', 4)]

    assert [u['name'] for u in client.get('/users/by-skill/ÖKONOMIE').json()] == ['Ada']

    assert client.delete('/users/skills/Ökonomie', headers=headers).status_code == 200
    assert client.get('/users/profile', headers=headers).json()['skills'] == []
