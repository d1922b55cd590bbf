"""
VPS Control
===========

Provision and manage virtual servers across Virtualizor, Vultr and 20i
through a single lifecycle contract.
"""

__version__ = "1.0.0"
