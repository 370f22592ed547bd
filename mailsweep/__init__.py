"""
mailsweep: bulk SMTP verification of a stored email list.
"""

__version__ = "0.1.0"
