"""
Test suite for the flow adapters.

Failures must be reported on the status and error channels and never be
raised to the host.
"""

import json

import pytest

from composer_flow.config import BridgeConfig
from composer_flow.errors import ConfigError, ConnectionError, NotFoundError, RemoteOperationError, ValidationError
from composer_flow.flow import CLEAR_STATUS, ComposerInNode, ComposerOutNode, FlowNode, NodeStatus
from composer_flow.session import SessionManager


class Recorder:
    """Collects everything a node emits."""

    def __init__(self, node):
        self.statuses = []
        self.sent = []
        self.errors = []
        node.on_status(self.statuses.append)
        node.on_send(self.sent.append)
        node.on_error(lambda message, msg: self.errors.append((message, msg)))


class TestOutNode:
    """Tests for create/update nodes."""

    @pytest.mark.asyncio
    async def test_create_participant(self, node_config, session_manager, mock_client, member_payload):
        node = ComposerOutNode(node_config, session_manager)
        recorder = Recorder(node)

        result = await node.handle_input({"payload": member_payload})

        assert result.ok
        assert mock_client.registries["org.acme.Member"].calls == ["add"]
        assert recorder.statuses[-1] == CLEAR_STATUS
        assert recorder.errors == []
        assert recorder.sent == []

    @pytest.mark.asyncio
    async def test_update_action(self, node_config, session_manager, mock_client, member_payload):
        await ComposerOutNode(node_config, session_manager).handle_input({"payload": member_payload})

        node = ComposerOutNode({**node_config, "actionType": "update"}, session_manager)
        result = await node.handle_input({"payload": {**member_payload, "balance": 1}})

        assert result.ok
        assert mock_client.registries["org.acme.Member"].calls == ["add", "update"]

    @pytest.mark.asyncio
    async def test_missing_class_reports_error(self, node_config, session_manager, mock_client):
        node = ComposerOutNode(node_config, session_manager)
        recorder = Recorder(node)
        msg = {"payload": {"balance": 1}}

        result = await node.handle_input(msg)

        assert isinstance(result.error, ValidationError)
        assert recorder.statuses[-1].fill == "red"
        assert recorder.errors[0][1] is msg
        assert mock_client.connect_calls == []

    @pytest.mark.asyncio
    async def test_missing_config_reports_error(self, node_config, session_manager, mock_client, member_payload):
        del node_config["participantPassword"]
        node = ComposerOutNode(node_config, session_manager)
        recorder = Recorder(node)

        result = await node.handle_input({"payload": member_payload})

        assert isinstance(result.error, ConfigError)
        assert "participantPassword" in recorder.errors[0][0]
        assert mock_client.connect_calls == []

    @pytest.mark.asyncio
    async def test_invalid_action_type(self, node_config, session_manager, member_payload):
        node = ComposerOutNode({**node_config, "actionType": "retrieve"}, session_manager)
        recorder = Recorder(node)

        result = await node.handle_input({"payload": member_payload})

        assert isinstance(result.error, ConfigError)
        assert len(recorder.errors) == 1


class TestInNode:
    """Tests for retrieve nodes."""

    @pytest.mark.asyncio
    async def test_retrieve_sends_resource(self, node_config, session_manager, member_payload):
        await ComposerOutNode(node_config, session_manager).handle_input({"payload": member_payload})

        node = ComposerInNode(node_config, session_manager)
        recorder = Recorder(node)
        msg = {"topic": "lookup", "payload": {"modelName": "org.acme.Member", "id": "a@b.com"}}

        result = await node.handle_input(msg)

        assert result.ok
        assert recorder.sent == [{"topic": "lookup", "payload": member_payload}]
        assert msg["payload"] == {"modelName": "org.acme.Member", "id": "a@b.com"}

    @pytest.mark.asyncio
    async def test_not_found_halts_flow(self, node_config, session_manager):
        node = ComposerInNode(node_config, session_manager)
        recorder = Recorder(node)

        result = await node.handle_input({"payload": {"modelName": "org.acme.Member", "id": "missing@x.com"}})

        assert isinstance(result.error, NotFoundError)
        assert recorder.sent == []
        assert recorder.statuses[-1].fill == "red"
        assert len(recorder.errors) == 1

    @pytest.mark.asyncio
    async def test_nodes_share_one_session(self, node_config, session_manager, mock_client, member_payload):
        out_node = ComposerOutNode(node_config, session_manager)
        in_node = ComposerInNode(node_config, session_manager)

        await out_node.handle_input({"payload": member_payload})
        await in_node.handle_input({"payload": {"modelName": "org.acme.Member", "id": "a@b.com"}})

        assert len(mock_client.connect_calls) == 1


class TestHostBoundary:
    """Nothing a node runs into is raised to the host."""

    @pytest.mark.asyncio
    async def test_invalid_profile_entry_is_config_error(self, tmp_path, node_config, member_payload):
        profiles = tmp_path / "profiles.json"
        profiles.write_text(json.dumps({"p": {"type": "bogus"}}), encoding="utf-8")
        node = ComposerOutNode(node_config, SessionManager(BridgeConfig(profiles_file=str(profiles))))
        recorder = Recorder(node)

        result = await node.handle_input({"payload": member_payload})

        assert isinstance(result.error, ConfigError)
        assert result.error.field == "profiles_file"
        assert recorder.statuses[-1].fill == "red"
        assert len(recorder.errors) == 1

    @pytest.mark.asyncio
    async def test_profiles_file_holding_a_list_is_config_error(self, tmp_path, node_config):
        profiles = tmp_path / "profiles.json"
        profiles.write_text(json.dumps([{"type": "rest"}]), encoding="utf-8")
        node = ComposerInNode(node_config, SessionManager(BridgeConfig(profiles_file=str(profiles))))
        recorder = Recorder(node)

        result = await node.handle_input({"payload": {"modelName": "org.acme.Member", "id": "a@b.com"}})

        assert isinstance(result.error, ConfigError)
        assert recorder.sent == []

    @pytest.mark.asyncio
    async def test_client_factory_crash_is_reported(self, node_config, member_payload):
        def factory(parameters):
            raise RuntimeError("no driver")

        node = ComposerOutNode(node_config, SessionManager(BridgeConfig(), client_factory=factory))
        recorder = Recorder(node)

        result = await node.handle_input({"payload": member_payload})

        assert isinstance(result.error, ConnectionError)
        assert "no driver" in recorder.errors[0][0]

    @pytest.mark.asyncio
    async def test_unexpected_registry_error_is_reported(self, node_config, session_manager, mock_client, member_payload):
        mock_client.registry_error = RuntimeError("socket closed")
        node = ComposerOutNode(node_config, session_manager)
        recorder = Recorder(node)
        msg = {"payload": member_payload}

        result = await node.handle_input(msg)

        assert isinstance(result.error, RemoteOperationError)
        assert recorder.errors[0][1] is msg
        assert recorder.statuses[-1].fill == "red"

    def test_flow_node_is_abstract(self, node_config, session_manager):
        with pytest.raises(TypeError):
            FlowNode(node_config, session_manager)


def test_status_to_dict():
    assert NodeStatus(fill="red", shape="ring", text="boom").to_dict() == {
        "fill": "red", "shape": "ring", "text": "boom",
    }
    assert CLEAR_STATUS.to_dict() == {}
