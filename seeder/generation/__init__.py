"""
Generation package: synthetic record factory and the uniqueness registry it
consults. No network I/O happens here.
"""

from seeder.generation.factory import SyntheticRecordFactory
from seeder.generation.registry import UniquenessRegistry

__all__ = ["SyntheticRecordFactory", "UniquenessRegistry"]
