"""Tests for DAP protocol message types."""

import json

import pytest

from gotarget_mcp.dap.protocol import (
    MAX_CONTENT_LENGTH,
    Commands,
    DAPEvent,
    DAPRequest,
    DAPResponse,
    Events,
    encode_message,
    parse_content_length,
    parse_message,
)


class TestDAPRequest:
    """Tests for DAPRequest dataclass."""

    def test_to_dict_without_arguments(self):
        """Test converting request to dict without arguments."""
        req = DAPRequest(seq=1, command="configurationDone")
        d = req.to_dict()

        assert d == {"seq": 1, "type": "request", "command": "configurationDone"}

    def test_to_dict_with_arguments(self):
        req = DAPRequest(seq=3, command="disconnect", arguments={"terminateDebuggee": True})

        assert req.to_dict()["arguments"] == {"terminateDebuggee": True}

    def test_to_bytes(self):
        """Test serializing request to bytes with Content-Length header."""
        req = DAPRequest(seq=1, command="launch", arguments={"mode": "exec", "program": "/bin/app"})
        data = req.to_bytes()

        header, content = data.split(b"\r\n\r\n", 1)
        assert header.startswith(b"Content-Length: ")
        assert parse_content_length(header.decode()) == len(content)
        assert json.loads(content)["arguments"]["mode"] == "exec"

    def test_to_bytes_compact_json(self):
        """Test that JSON is compact (no extra spaces)."""
        content = DAPRequest(seq=1, command="test", arguments={"key": "value"}).to_bytes()
        body = content.split(b"\r\n\r\n")[1]

        assert b": " not in body
        assert b", " not in body


class TestEncodeMessage:
    """Tests for message framing."""

    def test_header_counts_utf8_bytes(self):
        data = encode_message({"output": "h\u00e9llo"})

        header, body = data.split(b"\r\n\r\n", 1)
        assert header == b"Content-Length: %d" % len(body)
        assert json.loads(body) == {"output": "h\u00e9llo"}


class TestDAPResponse:
    """Tests for DAPResponse dataclass."""

    def test_from_dict_success(self, sample_dap_response):
        resp = DAPResponse.from_dict(sample_dap_response)

        assert resp.request_seq == 1
        assert resp.success is True
        assert resp.message is None
        assert "supportsConfigurationDoneRequest" in resp.body

    def test_from_dict_failure(self):
        """Test parsing failed launch response."""
        data = {
            "seq": 5,
            "type": "response",
            "request_seq": 2,
            "success": False,
            "command": "launch",
            "message": "Failed to launch: could not open debug info",
        }
        resp = DAPResponse.from_dict(data)

        assert resp.success is False
        assert resp.message.startswith("Failed to launch")
        assert resp.body == {}

    def test_null_body(self):
        data = {"seq": 1, "type": "response", "request_seq": 1, "success": True,
                "command": "disconnect", "body": None}

        assert DAPResponse.from_dict(data).body == {}


class TestDAPEvent:
    """Tests for DAPEvent dataclass."""

    def test_from_dict_terminated_event(self, sample_dap_event):
        event = DAPEvent.from_dict(sample_dap_event)

        assert event.seq == 2
        assert event.event == "terminated"
        assert event.body == {}

    def test_from_dict_exited_event(self):
        event = DAPEvent.from_dict(
            {"seq": 7, "type": "event", "event": "exited", "body": {"exitCode": 2}}
        )

        assert event.body["exitCode"] == 2


class TestParseMessage:
    """Tests for parse_message function."""

    def test_parse_response(self, sample_dap_response):
        assert isinstance(parse_message(sample_dap_response), DAPResponse)

    def test_parse_event(self, sample_dap_event):
        msg = parse_message(sample_dap_event)

        assert isinstance(msg, DAPEvent)
        assert msg.event == Events.TERMINATED

    def test_parse_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown message type"):
            parse_message({"seq": 1, "type": "request"})

    def test_parse_missing_type(self):
        with pytest.raises(ValueError, match="Unknown message type"):
            parse_message({"seq": 1})


class TestParseContentLength:
    """Tests for header parsing."""

    def test_content_length(self):
        assert parse_content_length("Content-Length: 119") == 119

    def test_case_insensitive(self):
        assert parse_content_length("content-length:42") == 42

    def test_other_header(self):
        assert parse_content_length("Content-Type: application/json") is None

    def test_not_a_header(self):
        assert parse_content_length("garbage") is None

    def test_too_large(self):
        with pytest.raises(ValueError, match="Invalid Content-Length"):
            parse_content_length(f"Content-Length: {MAX_CONTENT_LENGTH + 1}")

    def test_malformed(self):
        with pytest.raises(ValueError):
            parse_content_length("Content-Length: abc")


class TestCommandsAndEvents:
    """Tests for command and event constants."""

    def test_commands_values(self):
        assert Commands.INITIALIZE == "initialize"
        assert Commands.LAUNCH == "launch"
        assert Commands.CONFIGURATION_DONE == "configurationDone"
        assert Commands.DISCONNECT == "disconnect"

    def test_events_values(self):
        assert Events.INITIALIZED == "initialized"
        assert Events.EXITED == "exited"
        assert Events.TERMINATED == "terminated"
        assert Events.OUTPUT == "output"
