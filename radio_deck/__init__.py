"""Control bridge between a networked SDR transceiver and a remote display surface."""

__version__ = "0.3.0"
