from .routes import pages_bp

__all__ = ["pages_bp"]
