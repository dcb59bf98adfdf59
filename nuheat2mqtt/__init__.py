"""MQTT bridge exposing NuHeat thermostats as hub devices."""

__version__ = "0.1.0"
