# phigate/__init__.py
"""
Pre-flight gate for clinical text sent to a generative model.

Keep this file minimal; import components from their packages:
    from phigate.guard import analyze
    from phigate.keys import KeyRotator
    from phigate.pmid import PmidVerifier
"""

__version__ = "0.1.0"
