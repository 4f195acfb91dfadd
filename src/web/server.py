"""
Game Server
===========

Flask + SocketIO server for playing 2048 in the browser and driving the
training service.

Features:
    - REST API for the board, moves, training, play and model management
    - WebSocket events pushing board and status changes
    - Keyboard moves rejected while training or demo play is running
    - Long-running jobs run in background threads

Usage:
    >>> from src.web import GameServer
    >>> server = GameServer(service, store, port=5000)
    >>> server.start()
    >>> ...
    >>> server.stop()
"""

import os
import threading
import base64
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np

try:
    import logging
    logging.getLogger('werkzeug').setLevel(logging.ERROR)

    from flask import Flask, render_template, jsonify, request, make_response
    from flask_socketio import SocketIO, emit
    FLASK_AVAILABLE = True
except ImportError:
    FLASK_AVAILABLE = False
    print("Warning: Flask not installed. Web server unavailable.")
    print("Install with: pip install flask flask-socketio")

import sys
sys.path.append('../..')
from config import Config
from src.ai.model_store import ModelStore
from src.ai.trainer import TrainingService
from src.game.base_game import DIRECTIONS
from src.utils.logger import get_logger

_logger = get_logger(__name__)


def _make_json_safe(obj: Any) -> Any:
    """
    Convert NumPy types to native Python types for JSON serialization.

    Recursively processes dictionaries and lists.
    """
    if isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {k: _make_json_safe(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_make_json_safe(v) for v in obj]
    return obj


class GameServer:
    """
    Flask server for the 2048 board and training controls.

    Runs in a background thread. Every board change made by the service
    (training resets, demo moves) is pushed as 'state_update'; every status
    change as 'status_update'.

    Example:
        >>> server = GameServer(service, store)
        >>> server.start()
    """

    def __init__(
        self,
        service: TrainingService,
        store: ModelStore,
        config: Optional[Config] = None,
        port: Optional[int] = None,
        host: Optional[str] = None
    ):
        """
        Initialize the server.

        Args:
            service: Training service owning the live game
            store: Model store attached to the service
            config: Configuration object
            port: Port to run the server on (default: config WEB_PORT)
            host: Host address (default: config WEB_HOST)
        """
        if not FLASK_AVAILABLE:
            raise RuntimeError("Flask is not installed. Run: pip install flask flask-socketio")

        self.config = config or service.config
        self.service = service
        self.store = store
        self.port = port or self.config.WEB_PORT
        self.host = host or self.config.WEB_HOST

        base_dir = os.path.dirname(__file__)
        self.app = Flask(__name__, template_folder=os.path.join(base_dir, 'templates'))
        self.app.config['SECRET_KEY'] = base64.b64encode(os.urandom(24)).decode('utf-8')

        self.socketio = SocketIO(self.app, cors_allowed_origins="*", async_mode='threading')

        self._register_routes()
        self._register_socket_events()

        self._server_thread: Optional[threading.Thread] = None
        self._job_thread: Optional[threading.Thread] = None
        self._running = False

        self.service.on_state(lambda game: self._broadcast('state_update', self._state()))
        self.service.on_status(lambda status, busy: self._broadcast('status_update', self._status()))

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _state(self) -> Dict[str, Any]:
        return _make_json_safe(self.service.game.to_dict())

    def _status(self) -> Dict[str, Any]:
        status = self.service.get_status()
        status['selected_model'] = self.store.selected
        return _make_json_safe(status)

    def _broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        if self.socketio and self._running:
            self.socketio.emit(event, payload)

    def _shift(self, direction: str) -> Tuple[Dict[str, Any], int]:
        if self.service.busy:
            return {'error': 'Input blocked while the AI is running', 'status': self.service.status}, 409
        if direction not in DIRECTIONS:
            return {'error': f'Unknown direction: {direction!r}'}, 400

        moved = self.service.game.shift(direction)
        state = self._state()
        self._broadcast('state_update', state)
        return dict(state, moved=moved), 200

    def _reset(self) -> Tuple[Dict[str, Any], int]:
        if self.service.busy:
            return {'error': 'Input blocked while the AI is running'}, 409
        self.service.game.reset()
        state = self._state()
        self._broadcast('state_update', state)
        return state, 200

    def _start_job(self, name: str, target: Callable[[], Any]) -> Tuple[Dict[str, Any], int]:
        """Run a service operation in a background thread."""
        if self.service.model is None:
            return {'error': 'No model: create or load one first'}, 400
        if self.service.busy or (self._job_thread is not None and self._job_thread.is_alive()):
            return {'error': 'Busy', 'status': self.service.status}, 409

        self._job_thread = threading.Thread(target=target, name=f'{name}-job', daemon=True)
        self._job_thread.start()
        _logger.info(f"Started {name} job")
        return {'started': name}, 202

    def _train_job(self, data: Dict[str, Any]) -> Tuple[Dict[str, Any], int]:
        try:
            rounds = int(data['rounds']) if data.get('rounds') is not None else None
            steps = int(data['steps']) if data.get('steps') is not None else None
        except (TypeError, ValueError):
            return {'error': 'rounds and steps must be integers'}, 400
        if (rounds is not None and rounds <= 0) or (steps is not None and steps <= 0):
            return {'error': 'rounds and steps must be positive'}, 400
        return self._start_job('train', lambda: self.service.train(rounds=rounds, steps=steps))

    def _model_action(self, data: Dict[str, Any]) -> Tuple[Dict[str, Any], int]:
        action = data.get('action')
        path = data.get('path', '')

        if action == 'create':
            if self.service.busy:
                return {'error': 'Busy'}, 409
            self.store.create_model()
            return {'success': True}, 200
        elif action == 'save':
            saved = self.store.save_model()
            if saved is None:
                return {'error': 'Failed to save model'}, 500
            return {'success': True, 'path': saved}, 200
        elif action == 'load':
            if not self.store.load_model(path):
                return {'error': 'Failed to load model'}, 400
            return {'success': True, 'path': self.store.selected}, 200
        elif action == 'overwrite':
            if not self.store.overwrite_model(path):
                return {'error': 'Failed to overwrite model'}, 400
            return {'success': True}, 200
        elif action == 'select':
            self.store.selected = path
            return {'success': True, 'path': path}, 200
        return {'error': f'Unknown action: {action!r}'}, 400

    # =========================================================================
    # ROUTES
    # =========================================================================

    def _register_routes(self) -> None:
        """Register Flask routes."""

        @self.app.route('/')
        def index():
            response = make_response(render_template('index.html', size=self.config.TABLE_SIZE))
            response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
            return response

        @self.app.route('/api/state')
        def api_state():
            return jsonify(self._state())

        @self.app.route('/api/shift', methods=['POST'])
        def api_shift():
            data = request.get_json(silent=True) or {}
            body, code = self._shift(data.get('direction', ''))
            return jsonify(body), code

        @self.app.route('/api/reset', methods=['POST'])
        def api_reset():
            body, code = self._reset()
            return jsonify(body), code

        @self.app.route('/api/status')
        def api_status():
            return jsonify(self._status())

        @self.app.route('/api/train', methods=['POST'])
        def api_train():
            body, code = self._train_job(request.get_json(silent=True) or {})
            return jsonify(body), code

        @self.app.route('/api/play', methods=['POST'])
        def api_play():
            body, code = self._start_job('play', self.service.play)
            return jsonify(body), code

        @self.app.route('/api/stop', methods=['POST'])
        def api_stop():
            self.service.stop()
            return jsonify({'success': True})

        @self.app.route('/api/models', methods=['GET'])
        def api_models():
            return jsonify(_make_json_safe({
                'models': self.store.list_models(),
                'selected': self.store.selected,
            }))

        @self.app.route('/api/models', methods=['POST'])
        def api_models_action():
            body, code = self._model_action(request.get_json(silent=True) or {})
            return jsonify(body), code

        @self.app.route('/api/models/<path:filename>', methods=['DELETE'])
        def api_delete_model(filename):
            if not self.store.delete_model(filename):
                return jsonify({'error': 'Failed to delete model'}), 400
            return jsonify({'success': True, 'filename': os.path.basename(filename)})

    def _register_socket_events(self) -> None:
        """Register SocketIO events."""

        @self.socketio.on('connect')
        def handle_connect():
            emit('state_update', self._state())
            emit('status_update', self._status())

        @self.socketio.on('control')
        def handle_control(data):
            action = (data or {}).get('action')

            if action == 'shift':
                body, code = self._shift(data.get('direction', ''))
                if code != 200:
                    emit('control_error', body)
            elif action == 'reset':
                body, code = self._reset()
                if code != 200:
                    emit('control_error', body)
            elif action == 'train':
                body, code = self._train_job(data)
                if code != 202:
                    emit('control_error', body)
            elif action == 'play':
                body, code = self._start_job('play', self.service.play)
                if code != 202:
                    emit('control_error', body)
            elif action == 'stop':
                self.service.stop()
            else:
                emit('control_error', {'error': f'Unknown action: {action!r}'})

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Start the web server in a background thread."""
        if self._running:
            return
        self._running = True

        logging.getLogger('engineio').setLevel(logging.ERROR)
        logging.getLogger('socketio').setLevel(logging.ERROR)

        def run_server():
            _logger.info(f"Game server running at http://localhost:{self.port}")
            try:
                self.socketio.run(
                    self.app,
                    host=self.host,
                    port=self.port,
                    debug=False,
                    use_reloader=False,
                    log_output=False,
                    allow_unsafe_werkzeug=True
                )
            except (OSError, RuntimeError) as e:
                _logger.error(f"Failed to start game server on port {self.port}: {e}")
                self._running = False

        self._server_thread = threading.Thread(target=run_server, daemon=True)
        self._server_thread.start()

    def stop(self) -> None:
        """Stop the web server and any running job."""
        self._running = False
        self.service.stop()
        try:
            self.socketio.stop()
        except RuntimeError as e:
            _logger.debug(f"Server stop: {e}")
