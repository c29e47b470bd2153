"""Building blocks for network scanners: target ranges, requests, packets and scan methods."""

__version__ = "0.1.0"