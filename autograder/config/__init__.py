"""Configuration module for the autograder application."""
from .settings import AppConfig, load_settings

__all__ = ["AppConfig", "load_settings"]
