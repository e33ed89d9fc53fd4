"""StackLayer: wave-based, multi-region deployment of independently deployable units."""

__version__ = "0.1.0"
