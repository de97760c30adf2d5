"""Bitcoin fee tracker: periodic fee sync, fee badge and low-fee alerts."""

__version__ = "0.1.0"
