"""Tests for the hardware adapters."""

from collections.abc import Mapping, Sequence
from typing import Any

import pytest

from hwml._adapter import Channel, Direction, HardwareAdapter, MemoryAdapter, NullAdapter, channel_name


class TestChannelName:
    @pytest.mark.parametrize(
        ("hw", "expected"),
        [
            ("adc0", "adc0"),
            ({"channel": "pwm1", "pin": 3}, "pwm1"),
            ({"pin": 3}, "m.c.x"),
            ({"channel": 7}, "m.c.x"),
            (5, "m.c.x"),
        ],
    )
    def test_channel_name(self, hw: Any, expected: str) -> None:
        assert channel_name(hw, "m.c.x") == expected


class TestMemoryAdapter:
    """Tests for the scripted in-memory adapter."""

    def test_frames_are_consumed_in_order(self) -> None:
        adapter = MemoryAdapter([{"adc0": 1}, {"adc0": 2}])
        assert adapter.read_inputs() == {"adc0": 1}
        assert adapter.read_inputs() == {"adc0": 2}
        assert adapter.pending == 0

    def test_last_frame_repeats(self) -> None:
        adapter = MemoryAdapter([{"adc0": 1}])
        adapter.read_inputs()
        assert adapter.read_inputs() == {"adc0": 1}

    def test_no_frames(self) -> None:
        assert MemoryAdapter().read_inputs() == {}

    def test_push(self) -> None:
        adapter = MemoryAdapter()
        adapter.push({"adc0": 3})
        assert adapter.pending == 1
        assert adapter.read_inputs() == {"adc0": 3}

    def test_read_returns_copy(self) -> None:
        adapter = MemoryAdapter([{"adc0": 1}])
        frame = adapter.read_inputs()
        frame["adc0"] = 99  # type: ignore[index]
        assert adapter.read_inputs() == {"adc0": 1}

    def test_writes_are_recorded(self) -> None:
        adapter = MemoryAdapter()
        assert adapter.last_written == {}
        adapter.write_outputs({"dac0": 1.5})
        adapter.write_outputs({"dac0": 2.5})
        assert adapter.written == [{"dac0": 1.5}, {"dac0": 2.5}]
        assert adapter.last_written == {"dac0": 2.5}

    def test_lifecycle(self) -> None:
        adapter = MemoryAdapter()
        channel = Channel("adc0", Direction.INPUT, "adc0", "m.c.x")
        adapter.connect([channel])
        assert adapter.connected
        assert adapter.channels == (channel,)
        adapter.disconnect()
        assert not adapter.connected


class TestProtocol:
    def test_builtin_adapters_satisfy_protocol(self) -> None:
        assert isinstance(MemoryAdapter(), HardwareAdapter)
        assert isinstance(NullAdapter(), HardwareAdapter)

    def test_custom_adapter(self) -> None:
        class Recorder:
            def __init__(self) -> None:
                self.events: list[str] = []

            def connect(self, channels: Sequence[Channel]) -> None:
                self.events.append(f"connect {len(channels)}")

            def read_inputs(self) -> Mapping[str, Any]:
                return {}

            def write_outputs(self, values: Mapping[str, Any]) -> None:
                self.events.append(f"write {sorted(values)}")

            def disconnect(self) -> None:
                self.events.append("disconnect")

        assert isinstance(Recorder(), HardwareAdapter)

    def test_null_adapter(self) -> None:
        adapter = NullAdapter()
        adapter.connect([Channel("dac0", Direction.OUTPUT)])
        assert adapter.read_inputs() == {}
        adapter.write_outputs({"dac0": 1})
        adapter.disconnect()
        assert adapter.channels == ()
