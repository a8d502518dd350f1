"""
Substitution rate models.
"""

from evoalign.models.rate import SubstitutionModel

__all__ = ["SubstitutionModel"]
