"""
Utility modules for the medical record template engine.

This package contains shared helpers used across the services, including
datetime utilities, template data validation, and template query helpers.
"""

from utils.dict_utils import shallow_merge

__all__ = ['shallow_merge']
