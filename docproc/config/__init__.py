"""Configuration module for docproc."""

from docproc.config.settings import LoggingConfig, ProcessorSettings, load_config

__all__ = ["LoggingConfig", "ProcessorSettings", "load_config"]
