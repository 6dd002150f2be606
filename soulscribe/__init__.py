"""SoulScribe chapter generation engine"""

__version__ = "0.3.0"
