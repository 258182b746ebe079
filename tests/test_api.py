"""Tests for the HTTP API."""
import pytest
from irrigation_engine.config.config import KEY_IRRIGATION_CONFIG, KEY_TANK_LEVEL
from irrigation_engine.models.irrigation_state import IrrigationMode

ADMIN = {'X-User-Role': 'admin'}
GARDENER = {'X-User-Role': 'gardener'}
USER = {'X-User-Role': 'user'}


def controllers_of(app):
    return app.extensions['irrigation_controllers']


def switch_to_manual(client):
    response = client.put('/api/irrigation/config', json={'mode': 'manual', 'active': True}, headers=ADMIN)
    assert response.status_code == 200


class TestHealthAndStatus:
    """Test read-only endpoints."""

    def test_health(self, client):
        """Test the health check."""
        response = client.get('/health')
        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'healthy'
        assert data['scheduler'] == 'stopped'

    def test_irrigation_status(self, client):
        """Test getting irrigation status."""
        response = client.get('/api/irrigation/status')
        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert data['status']['phase'] == 'idle'
        assert data['status']['stale'] is False

    def test_system_status(self, client):
        """Test getting system status."""
        response = client.get('/api/system/status')
        assert response.status_code == 200
        data = response.get_json()
        assert data['status']['store'] == 'InMemoryStateStore'
        assert data['status']['scheduler']['running'] is False

    def test_controllers_not_initialized(self, client, app):
        """Test the error when the scheduler is missing."""
        from irrigation_engine.api import irrigation
        saved = irrigation.controllers
        irrigation.controllers = {}
        try:
            response = client.get('/api/irrigation/status')
        finally:
            irrigation.controllers = saved
        assert response.status_code == 500
        assert response.get_json()['success'] is False


class TestConfigEndpoints:
    """Test configuration read and save."""

    def test_get_default_config(self, client):
        """Test that defaults are returned before any save."""
        response = client.get('/api/irrigation/config')
        assert response.status_code == 200
        config = response.get_json()['config']
        assert config['cycleDurationMinutes'] == 20.0
        assert config['scheduledTimeOfDay'] == '06:30'

    def test_save_config(self, client, app, memory_store):
        """Test a valid save by an admin."""
        response = client.put('/api/irrigation/config', json={'mode': 'manual', 'active': True}, headers=ADMIN)
        assert response.status_code == 200
        data = response.get_json()
        assert data['config']['mode'] == 'manual'
        assert data['config']['updatedAt'] is not None
        assert memory_store.get(KEY_IRRIGATION_CONFIG)['active'] is True
        assert controllers_of(app)['scheduler'].mode == IrrigationMode.MANUAL

    def test_partial_save_keeps_other_fields(self, client, memory_store):
        """Test that unspecified fields keep their stored values."""
        client.put('/api/irrigation/config', json={'autoFrequencyHours': 6}, headers=GARDENER)
        client.put('/api/irrigation/config', json={'cycleDurationMinutes': 30}, headers=GARDENER)
        stored = memory_store.get(KEY_IRRIGATION_CONFIG)
        assert stored['autoFrequencyHours'] == 6.0
        assert stored['cycleDurationMinutes'] == 30.0

    @pytest.mark.parametrize('headers', [{}, USER, {'X-User-Role': 'intruder'}])
    def test_save_forbidden_for_read_only_roles(self, client, memory_store, headers):
        """Test that only admin and gardener may save."""
        response = client.put('/api/irrigation/config', json={'active': True}, headers=headers)
        assert response.status_code == 403
        assert response.get_json()['success'] is False
        assert memory_store.get(KEY_IRRIGATION_CONFIG) is None

    @pytest.mark.parametrize('changes', [
        {'cycleDurationMinutes': 0},
        {'cycleDurationMinutes': 241},
        {'autoFrequencyHours': 0},
        {'scheduledTimeOfDay': '6:30'},
        {'mode': 'sometimes'},
        {'active': 'yes'},
        {'soilType': 'clay'},
    ])
    def test_invalid_config_rejected(self, client, memory_store, changes):
        """Test that invalid input is rejected without touching stored state."""
        response = client.put('/api/irrigation/config', json=changes, headers=ADMIN)
        assert response.status_code == 400
        assert 'Invalid configuration' in response.get_json()['error']
        assert memory_store.get(KEY_IRRIGATION_CONFIG) is None

    def test_save_replaces_malformed_config(self, client, memory_store):
        """Test that an operator save repairs a config another client corrupted."""
        memory_store.set(KEY_IRRIGATION_CONFIG, {'mode': 'Automatic', 'active': 'yes'})

        response = client.put('/api/irrigation/config', json={'mode': 'manual'}, headers=ADMIN)

        assert response.status_code == 200
        stored = memory_store.get(KEY_IRRIGATION_CONFIG)
        assert stored['mode'] == 'manual'
        assert stored['active'] is False


class TestManualEndpoint:
    """Test the manual switch."""

    def test_manual_cycle(self, client):
        """Test switching watering on and off."""
        switch_to_manual(client)

        response = client.post('/api/irrigation/manual', json={'on': True}, headers=GARDENER)
        assert response.status_code == 200
        data = response.get_json()
        assert data['watering'] is True
        assert data['session']['trigger'] == 'operator'

        response = client.post('/api/irrigation/manual', json={'on': True}, headers=GARDENER)
        assert response.status_code == 409

        response = client.post('/api/irrigation/manual', json={'on': False}, headers=GARDENER)
        assert response.status_code == 200
        assert response.get_json()['cancelled'] is True

    def test_manual_outside_manual_mode(self, client):
        """Test that the switch is rejected in automatic mode."""
        response = client.post('/api/irrigation/manual', json={'on': True}, headers=ADMIN)
        assert response.status_code == 409
        assert 'manual mode' in response.get_json()['error']

    def test_manual_requires_role(self, client):
        """Test that plain users cannot operate the valve."""
        switch_to_manual(client)
        response = client.post('/api/irrigation/manual', json={'on': True}, headers=USER)
        assert response.status_code == 403

    def test_manual_requires_boolean(self, client):
        """Test the request body check."""
        response = client.post('/api/irrigation/manual', json={}, headers=ADMIN)
        assert response.status_code == 400

    def test_manual_refused_on_low_tank(self, client, memory_store):
        """Test that the switch is refused below the minimum tank level."""
        switch_to_manual(client)
        memory_store.set(KEY_TANK_LEVEL, {'currentLiters': 2.0, 'capacityLiters': 500.0, 'lowThresholdPct': 20.0})
        response = client.post('/api/irrigation/manual', json={'on': True}, headers=ADMIN)
        assert response.status_code == 409

    def test_decisions_and_cycle_history(self, client):
        """Test that a manual cycle shows up in decisions and cycle logs."""
        switch_to_manual(client)
        client.post('/api/irrigation/manual', json={'on': True}, headers=ADMIN)
        client.post('/api/irrigation/manual', json={'on': False}, headers=ADMIN)

        decisions = client.get('/api/irrigation/decisions').get_json()
        assert decisions['count'] == 1
        assert decisions['decisions'][0]['decision'] == 'start_cycle'

        logs = client.get('/api/logs/cycles').get_json()
        assert logs['count'] == 2
        assert [log['status'] for log in logs['logs']] == ['cancelled', 'started']

        filtered = client.get('/api/logs/cycles?status=started').get_json()
        assert filtered['count'] == 1


class TestTankEndpoints:
    """Test tank level endpoints."""

    def test_get_default_tank(self, client):
        """Test the default tank level."""
        tank = client.get('/api/irrigation/tank').get_json()['tank']
        assert tank['currentLiters'] == 213.0
        assert tank['capacityLiters'] == 500.0
        assert tank['isLow'] is False

    def test_refill_clamps_to_capacity(self, client):
        """Test +50 % then +100 % refills."""
        response = client.post('/api/irrigation/tank/refill', json={'percent': 50}, headers=ADMIN)
        assert response.status_code == 200
        tank = response.get_json()['tank']
        assert tank['currentLiters'] == 463.0
        assert tank['addedLiters'] == 250.0

        tank = client.post('/api/irrigation/tank/refill', json={'percent': 100}, headers=ADMIN).get_json()['tank']
        assert tank['currentLiters'] == 500.0
        assert tank['addedLiters'] == 37.0

    @pytest.mark.parametrize('percent', [0, -10, 150, 'half', None])
    def test_invalid_refill(self, client, percent):
        """Test that out-of-range refills are rejected."""
        response = client.post('/api/irrigation/tank/refill', json={'percent': percent}, headers=ADMIN)
        assert response.status_code == 400

    def test_refill_requires_role(self, client):
        """Test that plain users cannot refill."""
        response = client.post('/api/irrigation/tank/refill', json={'percent': 25}, headers=USER)
        assert response.status_code == 403

    def test_capacity_change_reclamps_level(self, client):
        """Test that shrinking capacity clamps the current level."""
        response = client.put('/api/irrigation/tank', json={'capacityLiters': 100}, headers=ADMIN)
        assert response.status_code == 200
        tank = response.get_json()['tank']
        assert tank['currentLiters'] == 100.0
        assert tank['percent'] == 100.0

    def test_low_threshold_change(self, client):
        """Test that raising the threshold flags the tank as low."""
        tank = client.put('/api/irrigation/tank', json={'lowThresholdPct': 50}, headers=ADMIN).get_json()['tank']
        assert tank['isLow'] is True

    def test_refill_while_watering(self, client, app):
        """Test that a refill during a cycle goes through the scheduler."""
        switch_to_manual(client)
        client.post('/api/irrigation/manual', json={'on': True}, headers=ADMIN)

        tank = client.post('/api/irrigation/tank/refill', json={'percent': 10}, headers=ADMIN).get_json()['tank']

        assert tank['currentLiters'] == 263.0
        assert controllers_of(app)['scheduler'].cycle_timer.tank.current_liters == 263.0

    def test_invalid_tank_settings(self, client):
        """Test that a zero capacity is rejected."""
        response = client.put('/api/irrigation/tank', json={'capacityLiters': 0}, headers=ADMIN)
        assert response.status_code == 400


class TestValveEndpoints:
    """Test valve state and bridge reporting."""

    def test_confirmation_report(self, client):
        """Test that a bridge report is visible in the valve state."""
        response = client.post('/api/valve/confirmation', json={'open': True})
        assert response.status_code == 200

        valve = client.get('/api/valve/state').get_json()['valve']
        assert valve['confirmed']['open'] is True
        assert valve['stale'] is False

    def test_confirmation_requires_boolean(self, client):
        """Test the request body check."""
        response = client.post('/api/valve/confirmation', json={'open': 'yes'})
        assert response.status_code == 400


class TestErrors:
    """Test error mapping."""

    def test_store_unavailable(self, client, memory_store):
        """Test that an unreachable store maps to 503."""
        memory_store.set_available(False)
        response = client.get('/api/irrigation/config')
        assert response.status_code == 503
        assert response.get_json()['success'] is False

    def test_system_logs(self, client):
        """Test the system log listing."""
        response = client.get('/api/logs/system?log_level=warning')
        assert response.status_code == 200
        assert response.get_json()['count'] == 0
