"""Drive CyberGear motors over a CAN bus and bridge them to a host over a framed serial protocol."""

__version__ = "0.1.0"