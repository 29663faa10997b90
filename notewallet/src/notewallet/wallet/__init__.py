"""
Note analysis, selection, planning and consolidation.
"""
