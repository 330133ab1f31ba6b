"""
Hardware interface package for the Govee touch panel.

This package contains the MPR121 capacitive touch sensor driver (smbus2).
"""
