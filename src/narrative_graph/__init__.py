"""
Narrative Graph - consistency validation for story property graphs.
"""

__version__ = "0.1.0"
