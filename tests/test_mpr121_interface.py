"""
Tests for the MPR121 driver with a mocked I2C bus.
"""

from unittest.mock import MagicMock, call, patch

import pytest

from govee_touch.errors import ConfigError, SensorReadError
from govee_touch.hardware.mpr121_interface import MPR121Sensor


@pytest.fixture
def bus():
    bus = MagicMock()
    with patch("govee_touch.hardware.mpr121_interface.smbus.SMBus", return_value=bus) as smbus_cls, \
            patch("govee_touch.hardware.mpr121_interface.time.sleep"):
        bus.opened_with = smbus_cls
        yield bus


def test_initialize_sequence(bus):
    sensor = MPR121Sensor(i2c_address=0x5B, i2c_bus=3, touch_threshold=12, release_threshold=6)

    assert sensor.initialize()

    bus.opened_with.assert_called_once_with(3)
    writes = bus.write_byte_data.call_args_list
    assert writes[0] == call(0x5B, 0x80, 0x63)  # soft reset
    assert writes[1] == call(0x5B, 0x5E, 0x00)  # stop mode
    assert call(0x5B, 0x41, 12) in writes
    assert call(0x5B, 0x42, 6) in writes
    assert call(0x5B, 0x41 + 2 * 11, 12) in writes
    assert call(0x5B, 0x5D, 0x20) in writes
    assert writes[-1] == call(0x5B, 0x5E, 0x8F)  # run mode, all electrodes


def test_initialize_failure_returns_false(bus):
    bus.write_byte_data.side_effect = OSError(121, "Remote I/O error")
    sensor = MPR121Sensor()

    assert not sensor.initialize()
    assert not sensor.initialized


def test_read_touch_state_masks_to_twelve_bits(bus):
    bus.read_i2c_block_data.return_value = [0b0001_0001, 0xF2]
    sensor = MPR121Sensor()
    sensor.initialize()

    assert sensor.read_touch_state() == 0x211
    bus.read_i2c_block_data.assert_called_with(0x5A, 0x00, 2)


def test_read_failure_raises(bus):
    bus.read_i2c_block_data.side_effect = OSError(5, "Input/output error")
    sensor = MPR121Sensor()
    sensor.initialize()

    with pytest.raises(SensorReadError):
        sensor.read_touch_state()


def test_read_before_initialize_raises():
    with pytest.raises(SensorReadError):
        MPR121Sensor().read_touch_state()


@pytest.mark.parametrize("touch,release", [(256, 6), (12, -1)])
def test_thresholds_out_of_range(touch, release):
    with pytest.raises(ConfigError):
        MPR121Sensor(touch_threshold=touch, release_threshold=release)


def test_filtered_and_baseline_data(bus):
    bus.read_i2c_block_data.return_value = [0x34, 0x02]
    bus.read_byte_data.return_value = 0x8C
    sensor = MPR121Sensor()
    sensor.initialize()

    assert sensor.filtered_data(3) == 0x234
    bus.read_i2c_block_data.assert_called_with(0x5A, 0x04 + 6, 2)
    assert sensor.baseline_data(3) == 0x8C << 2
    bus.read_byte_data.assert_called_with(0x5A, 0x1E + 3)

    with pytest.raises(ValueError):
        sensor.filtered_data(12)


def test_close_stops_electrodes(bus):
    sensor = MPR121Sensor()
    sensor.initialize()

    sensor.close()

    assert bus.write_byte_data.call_args == call(0x5A, 0x5E, 0x00)
    bus.close.assert_called_once()
    assert not sensor.initialized
