"""
Tests for the game server.

Tests cover:
- JSON conversion helper
- Board routes and the busy guard
- Training/play job routes
- Model management routes
- SocketIO connect and control events
"""

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

try:
    from src.web.server import GameServer, _make_json_safe, FLASK_AVAILABLE
    WEB_AVAILABLE = FLASK_AVAILABLE
except ImportError:
    WEB_AVAILABLE = False

from src.ai.model_store import ModelStore
from src.ai.trainer import TrainingService
from src.game.game_2048 import Game2048


pytestmark = pytest.mark.skipif(
    not WEB_AVAILABLE,
    reason="Flask/SocketIO not installed"
)


@pytest.fixture
def service(fast_config):
    return TrainingService(Game2048(fast_config, seed=0), fast_config, sleep=lambda s: None)


@pytest.fixture
def store(service, fast_config):
    return ModelStore(service, fast_config)


@pytest.fixture
def server(service, store, fast_config):
    return GameServer(service, store, fast_config, port=5099)


@pytest.fixture
def client(server):
    server.app.config['TESTING'] = True
    return server.app.test_client()


def wait_for_job(server):
    if server._job_thread is not None:
        server._job_thread.join(timeout=30)


class TestMakeJsonSafe:
    """Tests for the _make_json_safe utility function."""

    def test_native_types_unchanged(self):
        assert _make_json_safe(42) == 42
        assert _make_json_safe("hello") == "hello"
        assert _make_json_safe(None) is None

    def test_numpy_values_converted(self):
        data = {'score': np.int64(8), 'q': np.float32(0.5), 'won': np.bool_(True),
                'board': np.zeros((2, 2), dtype=np.int64)}
        result = _make_json_safe(data)
        assert result == {'score': 8, 'q': 0.5, 'won': True, 'board': [[0, 0], [0, 0]]}
        assert isinstance(result['score'], int)
        assert isinstance(result['won'], bool)

    def test_tuples_become_lists(self):
        assert _make_json_safe((np.int64(1), 2)) == [1, 2]


class TestBoardRoutes:
    """Test board state and moves."""

    def test_index(self, client):
        response = client.get('/')
        assert response.status_code == 200
        assert b'2048' in response.data

    def test_state(self, client, service):
        data = client.get('/api/state').get_json()
        assert data['board'] == service.game.partition()
        assert data['score'] == 0
        assert data['won'] is False

    def test_shift(self, client, service):
        service.game.set_board(np.array([[2, 2, 0, 0]] + [[0, 0, 0, 0]] * 3))
        response = client.post('/api/shift', json={'direction': 'left'})
        data = response.get_json()
        assert response.status_code == 200
        assert data['moved'] is True
        assert data['score'] == 4
        assert data['board'][0][0] == 4

    def test_rejected_shift_reports_not_moved(self, client, service):
        service.game.set_board(np.array([[2, 4, 0, 0]] + [[0, 0, 0, 0]] * 3))
        data = client.post('/api/shift', json={'direction': 'left'}).get_json()
        assert data['moved'] is False

    def test_unknown_direction(self, client):
        assert client.post('/api/shift', json={'direction': 'sideways'}).status_code == 400
        assert client.post('/api/shift').status_code == 400

    def test_input_blocked_while_busy(self, client, service):
        service.busy = True
        assert client.post('/api/shift', json={'direction': 'up'}).status_code == 409
        assert client.post('/api/reset').status_code == 409

    def test_reset(self, client, service):
        service.game.set_board(np.array([[2, 2, 0, 0]] + [[0, 0, 0, 0]] * 3), score=40)
        data = client.post('/api/reset').get_json()
        assert data['score'] == 0
        assert sum(v != 0 for row in data['board'] for v in row) == 2


class TestJobRoutes:
    """Test training and play routes."""

    def test_status(self, client):
        data = client.get('/api/status').get_json()
        assert data['status'] == 'idle'
        assert data['busy'] is False
        assert data['has_model'] is False
        assert data['selected_model'] == ''

    def test_train_requires_model(self, client):
        assert client.post('/api/train', json={}).status_code == 400

    def test_train_runs_in_background(self, client, server, store, service):
        store.create_model()
        response = client.post('/api/train', json={'rounds': 1, 'steps': 5})
        assert response.status_code == 202
        wait_for_job(server)
        assert service.metrics.rounds_total == 1
        assert service.status == 'idle'

    @pytest.mark.parametrize("payload", [{'rounds': 'many'}, {'rounds': 0}, {'steps': -3}])
    def test_train_rejects_bad_arguments(self, client, store, payload):
        store.create_model()
        assert client.post('/api/train', json=payload).status_code == 400

    def test_train_refused_while_busy(self, client, store, service):
        store.create_model()
        service.busy = True
        assert client.post('/api/train', json={}).status_code == 409

    def test_play(self, client, server, store, service, monkeypatch):
        store.create_model()
        monkeypatch.setattr(service.orchestrator, 'just_play', lambda: (True, False))
        assert client.post('/api/play').status_code == 202
        wait_for_job(server)
        assert service.status == 'idle'

    def test_stop(self, client):
        assert client.post('/api/stop').get_json() == {'success': True}


class TestModelRoutes:
    """Test model management routes."""

    def test_create_save_list_load_delete(self, client, service):
        assert client.post('/api/models', json={'action': 'create'}).status_code == 200
        assert service.model is not None

        saved = client.post('/api/models', json={'action': 'save'}).get_json()
        assert saved['path'].endswith('game-model-0.pth')

        listing = client.get('/api/models').get_json()
        assert [m['name'] for m in listing['models']] == ['game-model-0.pth']

        loaded = client.post('/api/models', json={'action': 'load', 'path': 'game-model-0.pth'})
        assert loaded.status_code == 200
        assert client.get('/api/models').get_json()['selected'].endswith('game-model-0.pth')

        assert client.post('/api/models', json={'action': 'overwrite'}).status_code == 200

        deleted = client.delete('/api/models/game-model-0.pth')
        assert deleted.get_json()['filename'] == 'game-model-0.pth'
        assert client.get('/api/models').get_json()['models'] == []

    def test_save_without_model(self, client):
        assert client.post('/api/models', json={'action': 'save'}).status_code == 500

    def test_load_missing(self, client):
        response = client.post('/api/models', json={'action': 'load', 'path': 'nope.pth'})
        assert response.status_code == 400

    def test_delete_missing(self, client):
        assert client.delete('/api/models/game-model-5.pth').status_code == 400

    def test_unknown_action(self, client):
        assert client.post('/api/models', json={'action': 'rename'}).status_code == 400


class TestSocketEvents:
    """Test SocketIO events."""

    @pytest.fixture
    def socket_client(self, server):
        return server.socketio.test_client(server.app)

    def test_connect_sends_state_and_status(self, socket_client):
        names = [event['name'] for event in socket_client.get_received()]
        assert 'state_update' in names
        assert 'status_update' in names

    def test_control_shift(self, socket_client, service):
        socket_client.get_received()
        service.game.set_board(np.array([[2, 2, 0, 0]] + [[0, 0, 0, 0]] * 3))
        socket_client.emit('control', {'action': 'shift', 'direction': 'left'})
        assert service.game.score == 4
        assert socket_client.get_received() == []

    def test_control_blocked_while_busy(self, socket_client, service):
        socket_client.get_received()
        service.busy = True
        socket_client.emit('control', {'action': 'shift', 'direction': 'left'})
        received = socket_client.get_received()
        assert received[0]['name'] == 'control_error'

    def test_control_unknown_action(self, socket_client):
        socket_client.get_received()
        socket_client.emit('control', {'action': 'dance'})
        assert socket_client.get_received()[0]['name'] == 'control_error'
