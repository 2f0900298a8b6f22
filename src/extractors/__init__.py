"""
Extraction of artifacts from evidence.

Folder Structure:
- signatures.py    Signature rules, matching and the ordered registry
- carvers/         Carving engines (cache_carver)
"""

from .signatures import (
    DEFAULT_SIGNATURES,
    MatchResult,
    SignatureRegistry,
    SignatureRule,
    classify,
    match,
)
from . import carvers

__all__ = [
    'DEFAULT_SIGNATURES',
    'MatchResult',
    'SignatureRegistry',
    'SignatureRule',
    'classify',
    'match',
    'carvers',
]
