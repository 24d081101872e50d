"""
Tests for OSC encoding, the one-shot UDP sender and message statistics.
"""

import struct
from unittest.mock import Mock, patch

import pytest
from pythonosc.osc_message import OscMessage

from oscdock.osc import (
    DatagramClient,
    MessageStatistics,
    OscPacket,
    classify,
    encode,
    send_osc,
    validate_port,
)


def type_tags(dgram: bytes, address: str) -> str:
    """Extract the type-tag string (with leading comma) from a datagram."""
    start = len(address.encode("utf-8")) // 4 * 4 + 4
    end = dgram.index(b"\x00", start)
    return dgram[start:end].decode("ascii")


# =============================================================================
# Encoding
# =============================================================================

class TestEncodeLayout:
    """Byte layout of encoded messages."""

    def test_address_only(self):
        """A message without arguments is address block + ',' block."""
        assert encode("/press", []) == b"/press\x00\x00" + b",\x00\x00\x00"

    def test_short_address_padding(self):
        """'/a' pads to a 4-byte block."""
        dgram = encode("/a", [])
        assert dgram[:4] == b"/a\x00\x00"
        assert len(dgram) == 8

    def test_address_filling_block_gets_extra_block(self):
        """A 4-character address needs a second block for its terminator."""
        assert encode("/abc", [])[:8] == b"/abc\x00\x00\x00\x00"
        assert encode("/ab", [])[:4] == b"/ab\x00"

    def test_int_argument(self):
        """Integers are 4 bytes, big-endian, tag 'i'."""
        assert encode("/left", [6]) == (
            b"/left\x00\x00\x00" + b",i\x00\x00" + b"\x00\x00\x00\x06"
        )

    def test_negative_int_argument(self):
        """Negative integers use two's complement."""
        assert encode("/n", [-3])[-4:] == b"\xff\xff\xff\xfd"

    def test_float_argument(self):
        """Floats are IEEE-754 single precision, big-endian, tag 'f'."""
        dgram = encode("/f", [0.5])
        assert type_tags(dgram, "/f") == ",f"
        assert dgram[-4:] == struct.pack(">f", 0.5)

    def test_string_argument(self):
        """String arguments are NUL-terminated and padded."""
        assert encode("/s", ["hi"]) == b"/s\x00\x00" + b",s\x00\x00" + b"hi\x00\x00"

    def test_payloadless_tags(self):
        """True, False and None only add type tags."""
        assert encode("/t", [True, False, None]) == (
            b"/t\x00\x00" + b",TFN\x00\x00\x00\x00"
        )

    def test_empty_address_still_encodes(self):
        """An empty address gives a well-formed, empty packet."""
        assert encode("", []) == b"\x00\x00\x00\x00" + b",\x00\x00\x00"

    def test_none_args(self):
        """args=None is the same as no arguments."""
        assert encode("/x", None) == encode("/x", [])

    def test_utf8_strings(self):
        """Addresses and strings are UTF-8 encoded."""
        dgram = encode("/ü", ["é"])
        assert dgram.startswith("/ü".encode("utf-8"))
        assert len(dgram) % 4 == 0

    def test_lone_surrogate_does_not_fail(self):
        """Unencodable strings are replaced rather than raising."""
        dgram = encode("/s", ["\ud800"])
        assert len(dgram) % 4 == 0

    @pytest.mark.parametrize("address,args", [
        ("/a", []),
        ("/ab", [1]),
        ("/abc", [1.5, "x"]),
        ("/abcd", ["longer string", True, None, 7]),
        ("/mixer/ch/1/fader", [0.25, False, "main", -12, None]),
        ("", ["", ""]),
    ])
    def test_shape_invariants(self, address, args):
        """Every datagram is 4-byte aligned with one tag per argument."""
        dgram = encode(address, args)
        tags = type_tags(dgram, address)

        assert len(dgram) % 4 == 0
        assert tags.startswith(",")
        assert len(tags) == 1 + len(args)


class TestClassify:
    """Argument type classification by content."""

    def test_integral_values_are_int(self):
        """5 and 5.0 both encode as 'i'."""
        assert classify(5) == ("i", 5)
        assert classify(5.0) == ("i", 5)
        assert type_tags(encode("/x", [5.0]), "/x") == ",i"

    def test_fractional_values_are_float(self):
        """5.5 encodes as 'f'."""
        assert classify(5.5) == ("f", 5.5)

    def test_bool_before_int(self):
        """bool is not treated as an integer."""
        assert classify(True)[0] == "T"
        assert classify(False)[0] == "F"

    def test_none_is_nil(self):
        assert classify(None)[0] == "N"

    def test_int_outside_int32_is_float(self):
        """Integral values that do not fit int32 fall back to float."""
        assert classify(2 ** 31)[0] == "f"
        assert classify(-2 ** 31) == ("i", -2 ** 31)

    def test_non_finite_is_string(self):
        """nan and inf have no OSC numeric form here; they become strings."""
        assert classify(float("nan")) == ("s", "nan")
        assert classify(float("inf")) == ("s", "inf")

    def test_float32_overflow_is_string(self):
        assert classify(1e300)[0] == "s"

    def test_other_values_use_str(self):
        """Unknown types are coerced with str()."""
        assert classify([1, 2]) == ("s", "[1, 2]")
        assert classify({"a": 1}) == ("s", "{'a': 1}")


class TestPythonOscCompatibility:
    """Encoded datagrams parse with python-osc."""

    def test_parse_mixed_arguments(self):
        """Address and arguments survive a python-osc parse."""
        message = OscMessage(encode("/mix", [6, 0.5, "main", True, False, None]))

        assert message.address == "/mix"
        assert message.params == [6, 0.5, "main", True, False, None]

    def test_packet_dgram(self):
        """OscPacket exposes the encoded bytes and their size."""
        packet = OscPacket("/press", ())
        assert packet.dgram == encode("/press", [])
        assert packet.size == 12


# =============================================================================
# Sending
# =============================================================================

class TestSendOscDrops:
    """Malformed destinations never reach the network."""

    @pytest.mark.parametrize("host,port,address", [
        ("", 9000, "/a"),
        (None, 9000, "/a"),
        ("127.0.0.1", 0, "/a"),
        ("127.0.0.1", -1, "/a"),
        ("127.0.0.1", 70000, "/a"),
        ("127.0.0.1", True, "/a"),
        ("127.0.0.1", "9000", "/a"),
        ("127.0.0.1", 9000, ""),
        ("127.0.0.1", 9000, None),
    ])
    def test_dropped_silently(self, host, port, address):
        """Drop returns False, opens no socket and logs no error."""
        log = Mock()
        with patch("oscdock.osc.DatagramClient") as client_cls:
            assert send_osc(host, port, address, [], log=log) is False

        client_cls.assert_not_called()
        log.error.assert_not_called()
        log.info.assert_not_called()


class TestSendOscTransport:
    """Transport behaviour with the socket mocked out."""

    def test_logs_attempt(self):
        """Every attempt logs destination, address, args and byte count."""
        log = Mock()
        with patch("oscdock.osc.DatagramClient"):
            assert send_osc("10.0.0.5", 9000, "/left", [6], log=log) is True

        line = log.info.call_args[0][0]
        assert "10.0.0.5:9000" in line
        assert "/left" in line
        assert "args=[6]" in line
        assert "bytes=16" in line

    def test_sends_encoded_packet(self):
        """The client receives a packet whose dgram is the encoding."""
        with patch("oscdock.osc.DatagramClient") as client_cls:
            send_osc("10.0.0.5", 9000, "/left", [6], log=Mock())

        client_cls.assert_called_once_with("10.0.0.5", 9000)
        client = client_cls.return_value.__enter__.return_value
        packet = client.send.call_args[0][0]
        assert packet.dgram == encode("/left", [6])

    def test_resolution_error_logged(self):
        """Errors opening the socket are logged, not raised."""
        log = Mock()
        with patch("oscdock.osc.DatagramClient", side_effect=OSError("no such host")):
            assert send_osc("bad.invalid", 9000, "/a", [], log=log) is False

        log.error.assert_called_once()
        message = log.error.call_args[0][0]
        assert "bad.invalid:9000" in message
        assert "/a" in message
        assert "no such host" in message

    def test_overlong_host_label_logged(self):
        """A host label over 63 characters is rejected by the resolver, not raised."""
        log = Mock()
        host = "x" * 64 + ".local"

        assert send_osc(host, 9000, "/a", [], log=log) is False

        log.error.assert_called_once()
        assert host in log.error.call_args[0][0]

    def test_value_error_from_client_logged(self):
        log = Mock()
        with patch("oscdock.osc.DatagramClient", side_effect=UnicodeError("label too long")):
            assert send_osc("10.0.0.5", 9000, "/a", [], log=log) is False

        assert "label too long" in log.error.call_args[0][0]

    def test_send_error_releases_socket(self):
        """A failing sendto still closes the socket."""
        log = Mock()
        with patch("oscdock.osc.DatagramClient") as client_cls:
            context = client_cls.return_value
            context.__enter__.return_value.send.side_effect = OSError("unreachable")
            context.__exit__.return_value = False

            assert send_osc("10.0.0.5", 9000, "/a", [], log=log) is False

        context.__exit__.assert_called_once()
        log.error.assert_called_once()


class TestLoopback:
    """Real UDP datagrams on 127.0.0.1."""

    def test_press_without_arguments(self, osc_capture):
        """A bare address arrives with no arguments."""
        assert send_osc("127.0.0.1", osc_capture.port, "/press", []) is True

        _, address, args = osc_capture.wait_for_message("/press")
        assert address == "/press"
        assert args == ()

    def test_numeric_argument(self, osc_capture):
        send_osc("127.0.0.1", osc_capture.port, "/left", [6])

        _, _, args = osc_capture.wait_for_message("/left")
        assert args == (6,)

    def test_client_closes_socket(self, osc_capture):
        """Leaving the with block releases the socket."""
        with DatagramClient("127.0.0.1", osc_capture.port) as client:
            client.send(OscPacket("/x"))
            sock = client._sock

        assert sock.fileno() == -1


# =============================================================================
# Validation and statistics
# =============================================================================

class TestValidatePort:

    def test_valid_ports(self):
        validate_port(1)
        validate_port(8000)
        validate_port(65535)

    @pytest.mark.parametrize("port", [0, 65536, -5, True, None, "8000"])
    def test_invalid_ports(self, port):
        with pytest.raises(ValueError, match="Port must be in range"):
            validate_port(port)


class TestMessageStatistics:

    def test_counters(self):
        """Counters start at zero and accumulate."""
        stats = MessageStatistics()
        assert stats.get('messages_sent') == 0

        stats.increment('messages_sent')
        stats.increment('messages_sent', 2)
        assert stats.get('messages_sent') == 3

    def test_format(self):
        """Counters render sorted in Title Case inside a frame."""
        stats = MessageStatistics()
        stats.increment('messages_sent', 4)
        stats.increment('events_received', 5)

        lines = stats.format_stats("oscdock").splitlines()
        assert lines[1] == "oscdock"
        assert lines[3:5] == ["Events Received: 5", "Messages Sent: 4"]
        assert lines[0] == lines[-1] == "=" * 60

    def test_log_stats(self):
        stats = MessageStatistics()
        stats.increment('events_ignored')
        log = Mock()

        stats.log_stats(log, "T")

        logged = [c[0][0] for c in log.info.call_args_list]
        assert "Events Ignored: 1" in logged
