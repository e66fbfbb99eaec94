"""Tests for the REST API and Socket.IO handlers."""

import pytest

from camwatch.config import ServerConfig
from camwatch.main import create_app, initialize, shutdown

from conftest import ScriptBackend, make_camera


@pytest.fixture
def server():
    config = ServerConfig()
    config.public_host = "cams.local"
    config.prediction.models = ["bacterial-disease", "early-blight"]
    app, socketio, app_context = create_app(config, backend=ScriptBackend(devices=()))
    app.testing = True
    yield app, socketio, app_context
    shutdown(app_context)


@pytest.fixture
def client(server):
    app, _, _ = server
    return app.test_client()


class TestStartup:

    def test_no_cameras_leaves_loop_idle(self, server, client):
        _, _, app_context = server

        initialize(app_context)

        status = client.get('/api/status').get_json()
        assert status['cameras'] == 0
        assert status['models'] == ["bacterial-disease", "early-blight"]
        assert status['currentModel'] == "bacterial-disease"
        assert status['totalPredictions'] == 0
        assert not app_context['orchestrator'].is_running
        assert app_context['stream_manager'].states() == {}


class TestApiRoutes:

    def test_cameras(self, server, client):
        _, _, app_context = server
        app_context['state'].replace_cameras([make_camera(0), make_camera(1)])

        cameras = client.get('/api/cameras').get_json()

        assert [c['id'] for c in cameras] == [0, 1]
        assert cameras[1] == {
            'id': 1,
            'device': '/dev/video1',
            'streamPort': 20001,
            'streamUrl': 'http://cams.local:20001/stream',
            'resolution': '1280x720',
            'fps': 5,
            'streamState': 'stopped',
        }

    def test_predictions_newest_first(self, server, client):
        _, _, app_context = server
        state = app_context['state']
        state.record_prediction(0, "bacterial-disease", {'n': 1})
        state.record_prediction(1, "bacterial-disease", {'n': 2})

        predictions = client.get('/api/predictions').get_json()

        assert [p['result'] for p in predictions] == [{'n': 2}, {'n': 1}]
        assert predictions[0]['cameraId'] == 1
        assert predictions[0]['model'] == "bacterial-disease"

    def test_errors(self, server, client):
        _, _, app_context = server
        app_context['state'].record_error(0, "camera 0 capture timed out")

        errors = client.get('/api/errors').get_json()

        assert errors[0]['cameraId'] == 0
        assert errors[0]['error'] == "camera 0 capture timed out"

    def test_models(self, server, client):
        _, _, app_context = server
        app_context['state'].roster.replace(["a", "b"])

        assert client.get('/api/models').get_json() == ["a", "b"]

    def test_health(self, client):
        body = client.get('/api/health').get_json()

        assert body['status'] == 'healthy'
        assert body['uptime'] >= 0


class TestWebSocket:

    def test_connect_sends_status(self, server):
        app, socketio, app_context = server
        app_context['state'].roster.replace(["a"])

        ws = socketio.test_client(app)
        received = ws.get_received()

        assert received[0]['name'] == 'status_update'
        assert received[0]['args'][0]['currentModel'] == "a"
        ws.disconnect()

    def test_prediction_is_broadcast(self, server):
        app, socketio, app_context = server
        ws = socketio.test_client(app)
        ws.get_received()

        record = app_context['state'].record_prediction(0, "a", {'ok': True})
        app_context['orchestrator'].on_prediction(record)

        received = ws.get_received()
        assert received[0]['name'] == 'prediction'
        assert received[0]['args'][0]['result'] == {'ok': True}
        ws.disconnect()
