"""
Lender Catalog
Static, read-only table of lenders and their per-loan-type terms

The catalog is loaded once from YAML (packaged default or the path given by
settings.catalog_path) and shared by the classifier, the evaluator and the
comparison service. Nothing in the engine mutates it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from loanview.exceptions import CatalogError, UnknownLender, UnknownLoanType

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent / "data" / "lenders.yaml"


# ============================================================================
# Records
# ============================================================================

@dataclass(frozen=True)
class LoanType:
    """Portal-wide metadata for one loan type"""
    id: str
    label: str
    aliases: Tuple[str, ...] = ()
    default_rate_percent: float = 0.0
    description: str = ""

    def names(self) -> Tuple[str, ...]:
        """Every lower-case name this loan type answers to (id, label, aliases)"""
        return (self.id, self.label.lower(), *(a.lower() for a in self.aliases))


def _loan_type_name_pattern(name: str, is_id: bool) -> re.Pattern:
    """
    Whole-word pattern for one loan type name.

    Ids are everyday words ("home", "personal"), so in running text they only
    count as "<id> loan(s)"; a message that is just the id still matches.
    """
    escaped = re.escape(name)
    if is_id:
        return re.compile(r"^\s*" + escaped + r"\s*$|\b" + escaped + r" loans?\b")
    return re.compile(r"\b" + escaped + r"\b")


@dataclass(frozen=True)
class LenderLoanOffer:
    """One lender's terms for one loan type"""
    loan_type_id: str
    annual_rate_percent: float
    max_tenure_years: float
    min_credit_score: int = 0  # 0 means "no minimum"


@dataclass(frozen=True)
class Lender:
    """A lender with display metadata and its ordered offers"""
    id: str
    name: str
    category: str
    application_url: str
    offers: Tuple[LenderLoanOffer, ...] = field(default_factory=tuple)

    def offer_for(self, loan_type_id: str) -> Optional[LenderLoanOffer]:
        for offer in self.offers:
            if offer.loan_type_id == loan_type_id:
                return offer
        return None


# ============================================================================
# Catalog
# ============================================================================

class LenderCatalog:
    """
    Immutable lookup layer over the lender table.

    Lenders and loan types keep their declared order; every query that
    returns several rows (offers_for, all_offers) follows it.
    """

    def __init__(self, loan_types: List[LoanType], lenders: List[Lender]):
        self._loan_types: Tuple[LoanType, ...] = tuple(loan_types)
        self._lenders: Tuple[Lender, ...] = tuple(lenders)
        self._loan_type_index = {lt.id: lt for lt in self._loan_types}
        self._lender_index = {lender.id: lender for lender in self._lenders}

        # Longest names first so "working capital" wins over shorter overlaps
        names = sorted(
            ((name, lt.id) for lt in self._loan_types for name in lt.names()),
            key=lambda pair: len(pair[0]),
            reverse=True,
        )
        self._loan_type_patterns = [
            (_loan_type_name_pattern(name, name == loan_type_id), loan_type_id)
            for name, loan_type_id in names
        ]
        self._lender_patterns = [
            (re.compile(r"\b(" + re.escape(lender.id) + "|" + re.escape(lender.name.lower()) + r")\b"), lender)
            for lender in self._lenders
        ]

    # ---------- accessors ----------

    @property
    def loan_types(self) -> Tuple[LoanType, ...]:
        return self._loan_types

    @property
    def lenders(self) -> Tuple[Lender, ...]:
        return self._lenders

    def loan_type_ids(self) -> List[str]:
        return [lt.id for lt in self._loan_types]

    def get_loan_type(self, loan_type_id: str) -> LoanType:
        """
        Get loan type metadata by id.

        Raises:
            UnknownLoanType: If the id is not in the catalog
        """
        key = (loan_type_id or "").strip().lower()
        if key not in self._loan_type_index:
            raise UnknownLoanType(
                f"Invalid loan type: {loan_type_id}. Valid loan types: {', '.join(self.loan_type_ids())}"
            )
        return self._loan_type_index[key]

    def get_lender(self, lender_id: str) -> Lender:
        """
        Get a lender by id.

        Raises:
            UnknownLender: If the id is not in the catalog
        """
        key = (lender_id or "").strip().lower()
        if key not in self._lender_index:
            raise UnknownLender(f"Invalid lender: {lender_id}")
        return self._lender_index[key]

    def get_offer(self, lender_id: str, loan_type_id: str) -> LenderLoanOffer:
        """
        Get one lender's offer for a loan type.

        Raises:
            UnknownLender: If the lender does not exist
            UnknownLoanType: If the loan type does not exist or the lender does not offer it
        """
        lender = self.get_lender(lender_id)
        loan_type = self.get_loan_type(loan_type_id)
        offer = lender.offer_for(loan_type.id)
        if offer is None:
            raise UnknownLoanType(f"{lender.name} does not offer {loan_type.label}")
        return offer

    def offers_for(self, loan_type_id: str) -> List[Tuple[Lender, LenderLoanOffer]]:
        """All (lender, offer) pairs for a loan type, in catalog order. Non-offering lenders are skipped."""
        pairs = []
        for lender in self._lenders:
            offer = lender.offer_for(loan_type_id)
            if offer is not None:
                pairs.append((lender, offer))
        return pairs

    def all_offers(self) -> List[Tuple[Lender, LenderLoanOffer]]:
        return [(lender, offer) for lender in self._lenders for offer in lender.offers]

    # ---------- free-text matching ----------

    def find_loan_type(self, text: str) -> Optional[str]:
        """
        Find a loan type mentioned in normalized text (whole words only).

        Examples:
            "what is the home loan rate" → "home"
            "rates for a car"           → "auto"
        """
        lowered = (text or "").lower()
        for pattern, loan_type_id in self._loan_type_patterns:
            if pattern.search(lowered):
                return loan_type_id
        return None

    def resolve_loan_type_answer(self, text: str) -> Optional[str]:
        """
        Resolve an interview answer to a loan type id by case-insensitive
        substring match against ids, labels and aliases (catalog order).
        """
        lowered = (text or "").strip().lower()
        if not lowered:
            return None
        for lt in self._loan_types:
            if any(name in lowered for name in lt.names()):
                return lt.id
        return None

    def find_lender(self, text: str) -> Optional[Lender]:
        """Find a lender named (by id or full name) in normalized text"""
        lowered = (text or "").lower()
        for pattern, lender in self._lender_patterns:
            if pattern.search(lowered):
                return lender
        return None


# ============================================================================
# Loading
# ============================================================================

def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise CatalogError(f"Catalog file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise CatalogError(f"Catalog file {path} is not valid YAML: {e}") from e


def _parse_offer(lender_id: str, raw: Dict[str, Any], known_types: Dict[str, LoanType]) -> LenderLoanOffer:
    loan_type_id = str(raw.get("loan_type", "")).strip().lower()
    if loan_type_id not in known_types:
        raise CatalogError(f"Lender '{lender_id}' lists unknown loan type '{loan_type_id}'")

    try:
        rate = float(raw["rate_percent"])
        max_tenure = float(raw["max_tenure_years"])
        min_score = int(raw.get("min_credit_score", 0) or 0)
    except (KeyError, TypeError, ValueError) as e:
        raise CatalogError(f"Lender '{lender_id}' has a malformed '{loan_type_id}' offer: {e}") from e

    if rate < 0:
        raise CatalogError(f"Lender '{lender_id}': negative rate for '{loan_type_id}'")
    if max_tenure <= 0:
        raise CatalogError(f"Lender '{lender_id}': max tenure must be positive for '{loan_type_id}'")
    if min_score < 0:
        raise CatalogError(f"Lender '{lender_id}': negative minimum credit score for '{loan_type_id}'")

    return LenderLoanOffer(
        loan_type_id=loan_type_id,
        annual_rate_percent=rate,
        max_tenure_years=max_tenure,
        min_credit_score=min_score,
    )


def parse_catalog(data: Dict[str, Any]) -> LenderCatalog:
    """
    Build a catalog from its mapping form (as loaded from YAML).

    Raises:
        CatalogError: On unknown loan types, duplicate (lender, loan type)
                      offers, duplicate ids or out-of-range terms
    """
    loan_types: List[LoanType] = []
    for raw in data.get("loan_types") or []:
        lt_id = str(raw.get("id", "")).strip().lower()
        if not lt_id:
            raise CatalogError("Loan type entry without an id")
        if any(lt.id == lt_id for lt in loan_types):
            raise CatalogError(f"Duplicate loan type id '{lt_id}'")
        loan_types.append(LoanType(
            id=lt_id,
            label=str(raw.get("label") or lt_id.title()),
            aliases=tuple(str(a) for a in (raw.get("aliases") or [])),
            default_rate_percent=float(raw.get("default_rate_percent", 0.0) or 0.0),
            description=str(raw.get("description") or ""),
        ))
    known_types = {lt.id: lt for lt in loan_types}

    lenders: List[Lender] = []
    for raw in data.get("lenders") or []:
        lender_id = str(raw.get("id", "")).strip().lower()
        if not lender_id:
            raise CatalogError("Lender entry without an id")
        if any(existing.id == lender_id for existing in lenders):
            raise CatalogError(f"Duplicate lender id '{lender_id}'")

        offers: List[LenderLoanOffer] = []
        for raw_offer in raw.get("offers") or []:
            offer = _parse_offer(lender_id, raw_offer, known_types)
            if any(o.loan_type_id == offer.loan_type_id for o in offers):
                raise CatalogError(f"Lender '{lender_id}' has more than one '{offer.loan_type_id}' offer")
            offers.append(offer)

        lenders.append(Lender(
            id=lender_id,
            name=str(raw.get("name") or lender_id.title()),
            category=str(raw.get("category") or ""),
            application_url=str(raw.get("application_url") or ""),
            offers=tuple(offers),
        ))

    return LenderCatalog(loan_types, lenders)


def load_catalog(path: Optional[str] = None) -> LenderCatalog:
    """Load and validate a catalog file (packaged default when path is None)"""
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    catalog = parse_catalog(_load_yaml(catalog_path))
    logger.info(
        "Lender catalog loaded from %s (%d lenders, %d loan types)",
        catalog_path, len(catalog.lenders), len(catalog.loan_types),
    )
    return catalog


@lru_cache(maxsize=None)
def get_default_catalog(path: Optional[str] = None) -> LenderCatalog:
    """Catalog shared read-only across conversations (loaded once per path)"""
    return load_catalog(path)
