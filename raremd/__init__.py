"""
RareMD Assist Backend

Clinical decision support for rare disease recognition: phenotype-driven
differential diagnosis, referral documents and practice case studies.
"""

__version__ = "1.0.0"
