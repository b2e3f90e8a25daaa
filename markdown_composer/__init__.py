"""Live markdown preview fed by an editor over a msgpack TCP stream."""

__version__ = "0.2.0"
