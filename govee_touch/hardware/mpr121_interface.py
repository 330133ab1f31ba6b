"""
MPR121 Touch Sensor Interface for the Govee touch panel.

This module talks to the MPR121 capacitive touch controller over I2C using
smbus2. It only configures the chip and reads raw state; edge detection lives
in govee_touch.touch_tracker.
"""

import logging
import time

import smbus2 as smbus

from govee_touch.errors import ConfigError, SensorReadError

logger = logging.getLogger("govee_touch.hardware.mpr121")

NUM_ELECTRODES = 12


class MPR121Sensor:
    """Interface with the MPR121 capacitive touch sensor."""

    # MPR121 Register Map
    TOUCH_STATUS_REG = 0x00  # Touch status register (LSB, MSB at 0x01)
    FILTERED_DATA_REG = 0x04  # Filtered data, 2 bytes per electrode
    BASELINE_REG = 0x1E  # Baseline data, 1 byte per electrode

    # Baseline filter registers
    MHD_RISING_REG = 0x2B
    NHD_RISING_REG = 0x2C
    NCL_RISING_REG = 0x2D
    FDL_RISING_REG = 0x2E
    MHD_FALLING_REG = 0x2F
    NHD_FALLING_REG = 0x30
    NCL_FALLING_REG = 0x31
    FDL_FALLING_REG = 0x32
    NHD_TOUCHED_REG = 0x33
    NCL_TOUCHED_REG = 0x34
    FDL_TOUCHED_REG = 0x35

    TOUCH_THRESHOLD_REG = 0x41  # Touch threshold register (first electrode)
    RELEASE_THRESHOLD_REG = 0x42  # Release threshold register (first electrode)
    DEBOUNCE_REG = 0x5B
    CONFIG1_REG = 0x5C  # Filter / global CDC config
    CONFIG2_REG = 0x5D  # Filter / global CDT config
    ELECTRODE_CONFIG_REG = 0x5E  # Electrode configuration register
    SOFT_RESET_REG = 0x80

    def __init__(
        self, i2c_address=0x5A, i2c_bus=1, touch_threshold=10, release_threshold=8
    ):
        """
        Initialize the MPR121 sensor interface.

        Args:
            i2c_address: I2C address of the MPR121 sensor
            i2c_bus: I2C bus number
            touch_threshold: Threshold for detecting touches (0-255)
            release_threshold: Threshold for detecting releases (0-255)

        Raises:
            ConfigError: If a threshold is outside 0-255
        """
        for name, value in (
            ("touch_threshold", touch_threshold),
            ("release_threshold", release_threshold),
        ):
            if not 0 <= value <= 255:
                raise ConfigError(f"{name} must be within 0-255, got {value}")

        self.i2c_address = i2c_address
        self.i2c_bus = i2c_bus
        self.bus = None
        self.touch_threshold = touch_threshold
        self.release_threshold = release_threshold
        self.initialized = False

    def initialize(self):
        """Reset and configure the MPR121, then put it in run mode.

        Returns:
            True if the chip acknowledged the whole sequence, False otherwise
        """
        try:
            self.bus = smbus.SMBus(self.i2c_bus)

            # Soft reset, then stop mode so the registers can be written
            self._write(self.SOFT_RESET_REG, 0x63)
            time.sleep(0.1)
            self._write(self.ELECTRODE_CONFIG_REG, 0x00)

            self.set_thresholds(self.touch_threshold, self.release_threshold)

            self._write(self.MHD_RISING_REG, 0x01)
            self._write(self.NHD_RISING_REG, 0x01)
            self._write(self.NCL_RISING_REG, 0x0E)
            self._write(self.FDL_RISING_REG, 0x00)

            self._write(self.MHD_FALLING_REG, 0x01)
            self._write(self.NHD_FALLING_REG, 0x05)
            self._write(self.NCL_FALLING_REG, 0x01)
            self._write(self.FDL_FALLING_REG, 0x00)

            self._write(self.NHD_TOUCHED_REG, 0x00)
            self._write(self.NCL_TOUCHED_REG, 0x00)
            self._write(self.FDL_TOUCHED_REG, 0x00)

            self._write(self.DEBOUNCE_REG, 0x00)
            self._write(self.CONFIG1_REG, 0x10)  # 16uA charge current
            self._write(self.CONFIG2_REG, 0x20)  # 0.5uS encoding, 1ms period

            # Enable all 12 electrodes with baseline tracking and run
            self._write(self.ELECTRODE_CONFIG_REG, 0x8F)

            self.initialized = True
            logger.info(
                f"MPR121 sensor initialized on bus {self.i2c_bus}, address {hex(self.i2c_address)}"
            )

        except OSError as e:
            logger.error(f"Failed to initialize MPR121 sensor: {e}")
            self.initialized = False

        return self.initialized

    def set_thresholds(self, touch, release):
        """Write touch and release thresholds to every electrode.

        Args:
            touch: Touch threshold (0-255)
            release: Release threshold (0-255)
        """
        if not 0 <= touch <= 255 or not 0 <= release <= 255:
            raise ConfigError(f"Thresholds must be within 0-255, got {touch}/{release}")

        for i in range(NUM_ELECTRODES + 1):  # includes the proximity electrode
            self._write(self.TOUCH_THRESHOLD_REG + 2 * i, touch)
            self._write(self.RELEASE_THRESHOLD_REG + 2 * i, release)

        self.touch_threshold = touch
        self.release_threshold = release

    def read_touch_state(self):
        """
        Read the current touch state from the sensor.

        Returns:
            Bitmask of touch states (bit 0 for electrode 0, bit 1 for electrode 1, etc.)

        Raises:
            SensorReadError: If the sensor is not initialized or the bus read fails
        """
        if not self.initialized or not self.bus:
            raise SensorReadError("MPR121 sensor is not initialized")

        try:
            touch_status = self.bus.read_i2c_block_data(
                self.i2c_address, self.TOUCH_STATUS_REG, 2
            )
        except OSError as e:
            raise SensorReadError(f"Error reading from MPR121 sensor: {e}") from e

        # Only the first 12 bits carry electrode state
        return (touch_status[0] | (touch_status[1] << 8)) & 0x0FFF

    def filtered_data(self, pin):
        """Return the 10-bit filtered capacitance reading of one electrode."""
        self._check_pin(pin)
        try:
            data = self.bus.read_i2c_block_data(
                self.i2c_address, self.FILTERED_DATA_REG + pin * 2, 2
            )
        except OSError as e:
            raise SensorReadError(f"Error reading filtered data for pin {pin}: {e}") from e
        return (data[0] | (data[1] << 8)) & 0x03FF

    def baseline_data(self, pin):
        """Return the baseline value of one electrode, scaled to filtered-data units."""
        self._check_pin(pin)
        try:
            baseline = self.bus.read_byte_data(self.i2c_address, self.BASELINE_REG + pin)
        except OSError as e:
            raise SensorReadError(f"Error reading baseline for pin {pin}: {e}") from e
        return baseline << 2

    def close(self):
        """Stop the electrodes and release the bus."""
        if not self.bus:
            return
        try:
            self._write(self.ELECTRODE_CONFIG_REG, 0x00)
        except OSError as e:
            logger.warning(f"Could not put MPR121 in stop mode: {e}")
        self.bus.close()
        self.bus = None
        self.initialized = False

    def _check_pin(self, pin):
        if not 0 <= pin < NUM_ELECTRODES:
            raise ValueError(f"pin must be within 0-{NUM_ELECTRODES - 1}, got {pin}")
        if not self.initialized or not self.bus:
            raise SensorReadError("MPR121 sensor is not initialized")

    def _write(self, register, value):
        self.bus.write_byte_data(self.i2c_address, register, value & 0xFF)
