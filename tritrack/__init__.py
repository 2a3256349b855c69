"""
tritrack - triathlon training and nutrition tracker backend.

Plan anchoring and merging, AI proxy endpoints, and Supabase-backed services.
"""

__version__ = '0.1.0'
