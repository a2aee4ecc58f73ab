"""paybridge: payment provider integrations with verified webhook routing."""

__version__ = "0.1.0"
