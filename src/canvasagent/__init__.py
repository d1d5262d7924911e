"""canvasagent - streaming structured-action agent engine for canvas documents."""

__version__ = "0.1.0"
