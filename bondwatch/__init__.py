# MIT License
# Copyright (c) 2025 Hashborn

"""
bondwatch - delegation and reward accounting for bonded-stake protocols.
"""

__version__ = "0.3.0"
