"""
Configuration module for the Japanese Real Estate harvester.

This module provides centralized configuration settings and logging setup
used throughout the harvester.

Submodules:
    settings: All configuration constants, database parameters, and defaults.
    logging_config: Centralized logging configuration.
"""

from .settings import *
from .logging_config import setup_logging
