"""
Column mapping service.

Maps file headers to canonical product fields. Passes, in priority order:

1. Header aliases (already applied by the file decoder, kept as-is)
2. External classifier, only when no required field could be aliased
3. Content-shape heuristics on up to 10 sample values per column
4. Fuzzy substring match against the alias table

A field claimed by one column is never offered to another: the set of
used fields is threaded through every pass.
"""

import asyncio
import math
import re
from dataclasses import dataclass
from typing import Callable, Optional, Sequence
import structlog

from config.inventory_fields import HEADER_ALIASES, HEURISTIC_SAMPLE_ROWS, REQUIRED_FIELDS
from exceptions import ExternalServiceError, MappingConflictError, ValidationError
from models.bulk_upload import (
    CanonicalField,
    ColumnMapping,
    MappingExplanation,
    MappingResult,
    MappingSuggestion,
    RawRow,
)
from parsers.file_decoder import detect_alias_mappings
from services.mapping_classifier_service import MappingClassifierService
from utils.text_utils import compact_header, strip_accents

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Classification:
    """A field guess for one column and the reason shown to the user."""
    field: CanonicalField
    reason: str


# (header, non-empty sample values, fields already claimed) -> guess or None
Classifier = Callable[[str, list[str], set[CanonicalField]], Optional[Classification]]


# ===================
# CONTENT HEURISTICS
# ===================

_DECIMAL = re.compile(r"^\d+([.,]\d{1,2})?$")
_INTEGER = re.compile(r"^-?\d+$")
_CODE = re.compile(r"^[A-Z0-9][\w-]{2,}$", re.IGNORECASE)

PRICE_TOKENS = ("precio", "price", "pvp", "venta")
COST_TOKENS = ("costo", "cost", "compra")
STOCK_TOKENS = ("stock", "cant", "qty", "inv")
SKU_TOKENS = ("art", "cod", "code", "part", "ref")
BRAND_TOKENS = ("marca", "brand", "fab")
NAME_TOKENS = ("desc", "nombre", "name", "product")


def _has_token(header: str, tokens: Sequence[str]) -> bool:
    key = strip_accents(header).lower().strip()
    return any(token in key for token in tokens)


def _all_decimal(values: list[str]) -> bool:
    return all(_DECIMAL.match(re.sub(r"\s", "", v)) for v in values)


def _all_integer(values: list[str]) -> bool:
    return all(_INTEGER.match(v.strip()) for v in values)


def _all_codes(values: list[str]) -> bool:
    return all(_CODE.match(v.strip()) for v in values)


def classify_price(header: str, values: list[str], used: set[CanonicalField]) -> Optional[Classification]:
    if CanonicalField.PRICE in used or not _all_decimal(values) or not _has_token(header, PRICE_TOKENS):
        return None
    return Classification(
        CanonicalField.PRICE,
        f'Decimal values and the name "{header}" suggest a price'
    )


def classify_cost(header: str, values: list[str], used: set[CanonicalField]) -> Optional[Classification]:
    if CanonicalField.COST in used or not _all_decimal(values) or not _has_token(header, COST_TOKENS):
        return None
    return Classification(
        CanonicalField.COST,
        f'Decimal values and the name "{header}" suggest a cost'
    )


def classify_stock(header: str, values: list[str], used: set[CanonicalField]) -> Optional[Classification]:
    if CanonicalField.STOCK in used or not _all_integer(values) or not _has_token(header, STOCK_TOKENS):
        return None
    return Classification(
        CanonicalField.STOCK,
        f'Integer values and the name "{header}" suggest stock'
    )


def classify_sku(header: str, values: list[str], used: set[CanonicalField]) -> Optional[Classification]:
    if CanonicalField.SKU in used or not _all_codes(values) or not _has_token(header, SKU_TOKENS):
        return None
    return Classification(
        CanonicalField.SKU,
        f'Alphanumeric codes and the name "{header}" suggest a SKU'
    )


def classify_brand(header: str, values: list[str], used: set[CanonicalField]) -> Optional[Classification]:
    if CanonicalField.BRAND in used or not _has_token(header, BRAND_TOKENS):
        return None
    distinct = {v.upper() for v in values}
    if len(distinct) > math.ceil(len(values) * 0.6) or not all(len(v) < 20 for v in values):
        return None
    return Classification(
        CanonicalField.BRAND,
        f'Short repeated values in "{header}" suggest a brand'
    )


def classify_name(header: str, values: list[str], used: set[CanonicalField]) -> Optional[Classification]:
    if CanonicalField.NAME in used or not _has_token(header, NAME_TOKENS):
        return None
    if not any(len(v) > 15 for v in values) or _all_decimal(values) or _all_integer(values):
        return None
    return Classification(
        CanonicalField.NAME,
        f'Descriptive text in "{header}" suggests the product name'
    )


def classify_fuzzy_alias(header: str, values: list[str], used: set[CanonicalField]) -> Optional[Classification]:
    """
    Partial match of the compacted header against every alias.

    "Precio Unit." contains "precio"; the alias closest in length wins.
    """
    key = compact_header(header)
    if not key:
        return None

    best: Optional[tuple[int, str, CanonicalField]] = None
    for alias, field in HEADER_ALIASES.items():
        if field in used:
            continue
        alias_key = compact_header(alias)
        if key in alias_key or alias_key in key:
            score = abs(len(key) - len(alias_key))
            if best is None or score < best[0]:
                best = (score, alias, field)

    if best is None:
        return None
    return Classification(best[2], f'The name "{header}" is similar to "{best[1]}"')


CONTENT_CLASSIFIERS: tuple[Classifier, ...] = (
    classify_price,
    classify_cost,
    classify_stock,
    classify_sku,
    classify_brand,
    classify_name,
)

DEFAULT_CLASSIFIERS: tuple[Classifier, ...] = CONTENT_CLASSIFIERS + (classify_fuzzy_alias,)


# ===================
# SERVICE
# ===================

class ColumnMappingService:
    """
    Suggest column mappings for a decoded file.
    """

    def __init__(
        self,
        classifier: Optional[MappingClassifierService] = None,
        classifiers: Optional[Sequence[Classifier]] = None,
    ):
        """
        Args:
            classifier: External classifier (optional, advisory)
            classifiers: Local classifier chain, in priority order
        """
        self.classifier = classifier
        self.classifiers = tuple(classifiers) if classifiers is not None else DEFAULT_CLASSIFIERS

    async def suggest_mapping(
        self,
        headers: list[str],
        sample_rows: list[RawRow],
        prior_mappings: Optional[list[ColumnMapping]] = None,
    ) -> MappingResult:
        """
        Complete a mapping for every column that is not mapped yet.

        Args:
            headers: File headers in order
            sample_rows: Rows to inspect (only the first few are used)
            prior_mappings: Mapping from the decoder or an earlier review;
                non-null entries are kept

        Returns:
            MappingResult with one mapping per header
        """
        if prior_mappings is None:
            prior_mappings = detect_alias_mappings(headers)

        prior_by_header = {m.file_header: m for m in prior_mappings}
        used: set[CanonicalField] = set()
        assigned: dict[str, ColumnMapping] = {}
        reasons: dict[str, str] = {}

        # Pass 1: keep existing mappings
        for header in headers:
            prior = prior_by_header.get(header)
            if prior is None or prior.target_field is None:
                continue
            if prior.target_field in used:
                claimed_by = [h for h, m in assigned.items() if m.target_field == prior.target_field]
                raise MappingConflictError(prior.target_field.value, claimed_by + [header])
            used.add(prior.target_field)
            assigned[header] = prior.model_copy()
            reasons[header] = (
                "Column name recognized automatically" if prior.auto_detected
                else "Set manually"
            )

        if len(assigned) == len(headers):
            return self._build_result(headers, assigned, reasons, used_external=False)

        # Pass 2: external classifier
        used_external = False
        if self._should_use_external(used):
            suggestions = await self._external_suggestions(headers, sample_rows)
            if suggestions is not None:
                used_external = True
                for suggestion in suggestions:
                    header, field = suggestion.file_header, suggestion.target_field
                    if header in assigned or field in used:
                        continue
                    used.add(field)
                    assigned[header] = ColumnMapping(file_header=header, target_field=field, auto_detected=True)
                    reasons[header] = suggestion.reason or "Suggested by AI classifier"

        # Passes 3 and 4: local classifier chain
        samples = sample_rows[:HEURISTIC_SAMPLE_ROWS]
        for header in headers:
            if header in assigned:
                continue
            values = [v for v in (row.get(header).strip() for row in samples) if v]
            hit = self._classify(header, values, used)
            if hit is None:
                continue
            used.add(hit.field)
            assigned[header] = ColumnMapping(file_header=header, target_field=hit.field, auto_detected=True)
            reasons[header] = hit.reason

        return self._build_result(headers, assigned, reasons, used_external=used_external)

    def _should_use_external(self, used: set[CanonicalField]) -> bool:
        """Only worth a call when aliases found none of the required fields."""
        if self.classifier is None or not self.classifier.is_configured:
            return False
        return not (REQUIRED_FIELDS & used)

    async def _external_suggestions(
        self,
        headers: list[str],
        sample_rows: list[RawRow],
    ) -> Optional[list[MappingSuggestion]]:
        """Classifier suggestions, or None if the call failed."""
        try:
            return await asyncio.to_thread(self.classifier.suggest, headers, sample_rows)
        except ExternalServiceError as e:
            logger.warning("external_mapping_failed", error=e.message)
            return None

    def _classify(
        self,
        header: str,
        values: list[str],
        used: set[CanonicalField],
    ) -> Optional[Classification]:
        """First hit of the classifier chain."""
        for classifier in self.classifiers:
            if classifier in CONTENT_CLASSIFIERS and not values:
                continue
            hit = classifier(header, values, used)
            if hit is not None:
                return hit
        return None

    def _build_result(
        self,
        headers: list[str],
        assigned: dict[str, ColumnMapping],
        reasons: dict[str, str],
        used_external: bool,
    ) -> MappingResult:
        mappings = [
            assigned.get(header) or ColumnMapping(file_header=header)
            for header in headers
        ]
        ensure_unique_targets(mappings)

        explanations = [
            MappingExplanation(
                file_header=m.file_header,
                target_field=m.target_field,
                reason=reasons.get(m.file_header, ""),
            )
            for m in mappings
            if m.target_field is not None
        ]
        unmapped = [m.file_header for m in mappings if m.target_field is None]

        logger.info(
            "columns_mapped",
            columns=len(headers),
            mapped=len(explanations),
            unmapped=len(unmapped),
            used_external=used_external
        )

        return MappingResult(
            mappings=mappings,
            explanations=explanations,
            used_external=used_external,
            unmapped_headers=unmapped,
        )


# ===================
# MAPPING HELPERS
# ===================

def ensure_unique_targets(mappings: list[ColumnMapping]) -> None:
    """
    Raise if two columns share a target field.

    Raises:
        MappingConflictError: With the field and the columns claiming it
    """
    claimed: dict[CanonicalField, str] = {}
    for m in mappings:
        if m.target_field is None:
            continue
        if m.target_field in claimed:
            raise MappingConflictError(
                m.target_field.value,
                [claimed[m.target_field], m.file_header]
            )
        claimed[m.target_field] = m.file_header


def assign_field(
    mappings: list[ColumnMapping],
    header: str,
    field: Optional[CanonicalField],
) -> list[ColumnMapping]:
    """
    Manually map one column, returning a new mapping list.

    Any other column holding the same field loses it, so the mapping stays
    conflict-free after every assignment. Pass field=None to unmap.

    Raises:
        ValidationError: If the header is not one of the file's columns
    """
    if header not in {m.file_header for m in mappings}:
        raise ValidationError(
            message=f"Unknown column '{header}'",
            code="UNKNOWN_COLUMN",
            details={"file_header": header}
        )

    updated = []
    for m in mappings:
        if m.file_header == header:
            updated.append(ColumnMapping(file_header=header, target_field=field, auto_detected=False))
        elif field is not None and m.target_field == field:
            logger.debug("mapping_reassigned", field=field.value, from_header=m.file_header, to_header=header)
            updated.append(ColumnMapping(file_header=m.file_header, target_field=None, auto_detected=False))
        else:
            updated.append(m.model_copy())

    ensure_unique_targets(updated)
    return updated


# Singleton instance
_column_mapping_service: Optional[ColumnMappingService] = None


def get_column_mapping_service() -> ColumnMappingService:
    """Get or create ColumnMappingService instance."""
    global _column_mapping_service
    if _column_mapping_service is None:
        from services.mapping_classifier_service import get_mapping_classifier_service
        _column_mapping_service = ColumnMappingService(classifier=get_mapping_classifier_service())
    return _column_mapping_service
