"""scenesync — keeps rundown slot assignments in step with live mixer scenes."""

__version__ = "0.1.0"
