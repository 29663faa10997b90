"""
notewallet - Note selection and consolidation engine for shielded balances
"""

__version__ = "0.3.0"
