"""Conversion policy configuration"""

from .policy import PolicyConfig, FileFormat, IODataType, ControlDependencyMode

__all__ = ['PolicyConfig', 'FileFormat', 'IODataType', 'ControlDependencyMode']
