"""k0watch: resilient watch streams over the k0rdent management plane."""

__version__ = "0.1.0"
