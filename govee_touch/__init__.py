"""
Govee touch panel.

Maps MPR121 capacitive touch electrodes to Govee smart-light commands.
"""

__version__ = "0.1.0"
