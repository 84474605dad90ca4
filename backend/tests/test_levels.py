from processmaster.services.sessions.levels import BUILTIN_LEVELS


def test_builtin_catalog(client):
    levels = client.get('/api/levels/').get_json()
    ids = [level['id'] for level in levels]
    assert ids == ['mckinsey', 'design_thinking', 'bpr', 'dmaic', 'eight_d']
    assert all(not level['custom'] for level in levels)

    mckinsey = client.get('/api/levels/mckinsey').get_json()
    assert len(mckinsey['correct_order']) == 7
    assert mckinsey['correct_order'][0] == {'id': 'm1', 'content': 'Define problem'}
    assert client.get('/api/levels/nope').status_code == 404


def test_create_custom_level(host_client, client):
    res = host_client.post('/api/levels/', json={
        'title': 'Make Tea',
        'steps': ['Boil water', {'content': 'Add tea bag'}, '  ', 'Pour water'],
    })
    assert res.status_code == 201
    level = res.get_json()
    assert level['id'] == 'custom_1'
    assert level['custom'] is True
    assert [s['id'] for s in level['correct_order']] == ['s1', 's2', 's3']

    ids = [lv['id'] for lv in client.get('/api/levels/').get_json()]
    assert ids[-1] == 'custom_1'
    assert client.get('/api/levels/custom_1').get_json()['title'] == 'Make Tea'


def test_custom_level_validation(host_client, client):
    assert client.post('/api/levels/', json={'title': 'x', 'steps': ['a', 'b']}).status_code == 401
    assert host_client.post('/api/levels/', json={'title': '', 'steps': ['a', 'b']}).status_code == 400
    assert host_client.post('/api/levels/', json={'title': 'One', 'steps': ['only']}).status_code == 400
    res = host_client.post('/api/levels/', json={'title': 'Dup', 'steps': ['Plan', 'plan', 'Do']})
    assert res.status_code == 400
    assert 'Duplicate step' in res.get_json()['error']


def test_custom_level_in_a_playlist_is_snapshotted(host_client, client):
    host_client.post('/api/levels/', json={'title': 'Make Tea', 'steps': ['Boil', 'Steep']})
    res = host_client.post('/api/sessions/', json={'playlist': [{'level_id': 'custom_1', 'time_limit': 20}, 'bpr']})
    assert res.status_code == 201
    playlist = res.get_json()['playlist']
    assert playlist[0]['level_data']['correct_order'] == [{'id': 's1', 'content': 'Boil'}, {'id': 's2', 'content': 'Steep'}]
    assert playlist[1]['time_limit'] == 60
    assert playlist[1]['level_data']['title'] == BUILTIN_LEVELS['bpr']['title']
