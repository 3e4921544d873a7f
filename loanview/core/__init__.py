"""
Conversation engine: classifier, eligibility interview and response assembly.
"""

from .assembler import ResponseAssembler, build_assembler
from .envelope import ResponseCategory, ResponseEnvelope

__all__ = [
    "ResponseAssembler",
    "build_assembler",
    "ResponseCategory",
    "ResponseEnvelope",
]
