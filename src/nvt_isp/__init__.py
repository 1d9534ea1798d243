"""ISP programmer for Nuvoton N76E003 microcontrollers."""

__version__ = "0.1.0"
