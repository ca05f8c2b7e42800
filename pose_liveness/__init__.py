"""
Guided pose liveness verification
"""
__version__ = "1.0.0"
