"""archfix: validated generative repair of architectural violations."""

__version__ = "0.1.0"
