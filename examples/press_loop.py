"""Drive the press example against a crude hydraulic model.

Run from the repository root::

    python examples/press_loop.py

The same document can be run from the command line with recorded frames::

    hwml run examples/press --input examples/press/frames.jsonl
"""

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import hwml

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

TARE = 892
CALIBRATION = 0.245  # N per ADC count


class HydraulicPlant:
    """Force rises toward ``duty`` percent of 80 N with a first-order lag."""

    def __init__(self, tau: float = 0.2, dt: float = 0.01) -> None:
        self.force = 0.0
        self.alpha = dt / (tau + dt)

    def connect(self, channels: Sequence[hwml.Channel]) -> None:
        for channel in channels:
            print(f"  {channel.direction:<6} {channel.name:<6} <- {channel.port}")

    def read_inputs(self) -> Mapping[str, Any]:
        return {"adc0": round(TARE + self.force / CALIBRATION)}

    def write_outputs(self, values: Mapping[str, Any]) -> None:
        target = 0.8 * values["pwm0"]
        self.force += self.alpha * (target - self.force)

    def disconnect(self) -> None:
        print(f"  final force: {self.force:.2f} N")


system = hwml.load_system(Path(__file__).parent / "press")
print("Evaluation order:", " → ".join(str(path) for path in system.order))

plant = HydraulicPlant(dt=system.config.dt)
runtime = hwml.Runtime(system, plant)


def report(result: hwml.TickResult) -> None:
    if result.tick % 50 == 0:
        force = result.get_value("press.sensor.force")
        duty = result.get_value("press.valve.duty")
        print(f"t={result.time:5.2f}s force={force:6.2f} N duty={duty:6.2f} %")


runtime.add_sink(report)
with runtime:
    runtime.run(300)
