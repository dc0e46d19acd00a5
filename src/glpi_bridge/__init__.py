"""GLPI bridge: mirrors GLPI users locally and exposes simplified REST endpoints."""

__version__ = "1.0.0"
