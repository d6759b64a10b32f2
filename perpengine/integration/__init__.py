"""
Collaborator seams: oracle, signed-message verifier, configuration
"""

from .oracle import Oracle, ScriptedOracle
from .verifier import BlsVerifier, Common, Fill, Intent, Take, Verifier

__all__ = [
    "Oracle",
    "ScriptedOracle",
    "BlsVerifier",
    "Verifier",
    "Common",
    "Intent",
    "Fill",
    "Take",
]
