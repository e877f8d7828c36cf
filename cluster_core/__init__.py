"""
cluster-core: clustering engine with partition, density, hierarchical and
support-vector clusterers.
"""

__version__ = "1.0.0"
