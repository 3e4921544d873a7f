# ==============================================
# File: loanview/core/envelope.py
# Description: Per-turn response unit handed to the presentation layer
# ==============================================

from __future__ import annotations
from typing import Any, Dict, Optional
from dataclasses import dataclass
from enum import Enum


class ResponseCategory(str, Enum):
    """How the presentation layer should render a reply"""
    WELCOME = "welcome"
    TEXT = "text"
    LOAN_CARD = "loan_card"                      # scenario / loan-type recommendation card
    COMPARISON_CARD = "comparison_card"
    START_ELIGIBILITY = "start_eligibility"
    ELIGIBILITY_RESULT = "eligibility_result"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "ResponseCategory":
        """Map a free-form category label onto a known category (unknown → TEXT)"""
        key = (label or "").strip().lower()
        for category in cls:
            if category.value == key:
                return category
        return cls.TEXT


@dataclass
class ResponseEnvelope:
    """
    One reply of the advisor.

    payload carries the structured part: a loan type id for a loan card,
    the comparison snapshot for a comparison card, the verdict list for an
    eligibility result, or interview progress while questions are asked.
    """
    display_text: str
    category: ResponseCategory = ResponseCategory.TEXT
    payload: Optional[Any] = None
    title: Optional[str] = None
    tip: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "displayText": self.display_text,
            "category": self.category.value,
            "payload": self.payload,
            "title": self.title,
            "tip": self.tip,
        }
