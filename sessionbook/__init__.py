"""Session booking core: slot generation, credit resolution, booking commits."""

__version__ = "0.1.0"
