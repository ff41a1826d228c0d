"""Test fixtures for reclink tests.

Provides:
- Sample source and reference rows
- Matching rule and configuration builders
"""

from .records import *
