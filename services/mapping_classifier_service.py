"""
Claude-backed column classifier.

Suggests which product field each spreadsheet column holds, from the
headers and a few sample rows. Suggestions are advisory: the column
mapper filters them and falls back to local heuristics when this service
is unavailable or fails.
"""

import json
import re
from typing import Optional
import structlog

import anthropic
from pydantic import ValidationError as PydanticValidationError

from config import settings
from config.inventory_fields import CLASSIFIER_SAMPLE_ROWS, FIELD_LABELS, REQUIRED_FIELDS
from exceptions import ExternalServiceError
from models.bulk_upload import CanonicalField, MappingSuggestion, RawRow

logger = structlog.get_logger(__name__)

SERVICE_NAME = "column_classifier"


class MappingClassifierService:
    """
    Map spreadsheet columns to product fields using the Claude Messages API.
    """

    SYSTEM_PROMPT = """You map columns of auto-parts inventory spreadsheets to a standard product schema.
Files may be in Spanish or English.

Target fields:
- "sku": unique product code (e.g. TOY-001, ATF-WSLT-TOY)
- "name": descriptive product name
- "description": detailed description (optional)
- "brand": manufacturer brand
- "external_ref": original manufacturer (OEM) part number
- "price": sale price (number)
- "cost": purchase cost (number, optional)
- "stock": quantity on hand (integer)
- "min_stock": minimum stock for alerts (integer, optional)
- "status": active / inactive / out_of_stock (optional)

Use "skip" for columns that match no field. Never map two columns to the same field.

IMPORTANT: Return ONLY valid JSON, no markdown, no explanation, in this exact structure:
{
  "mappings": [
    {"file_header": "column name", "target_field": "field or skip", "reason": "short explanation"}
  ]
}"""

    def __init__(self, client: Optional[anthropic.Anthropic] = None):
        """
        Args:
            client: Anthropic client; built from settings when omitted and
                an API key is configured
        """
        if client is not None:
            self.client = client
        elif settings.classifier_configured:
            self.client = anthropic.Anthropic(api_key=settings.anthropic_api_key)
        else:
            self.client = None

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def suggest(
        self,
        headers: list[str],
        sample_rows: list[RawRow],
    ) -> list[MappingSuggestion]:
        """
        Ask Claude for a column mapping.

        Args:
            headers: File headers in order
            sample_rows: Rows to show as examples (first 3 are sent)

        Returns:
            Suggestions with a canonical target field; "skip" and unknown
            fields are dropped

        Raises:
            ExternalServiceError: Not configured, API failure, or a
                response that is not the expected JSON
        """
        if not self.is_configured:
            raise ExternalServiceError(SERVICE_NAME, "Column classifier is not configured")

        logger.info("classifier_request_started", columns=len(headers))

        try:
            response = self.client.messages.create(
                model=settings.mapping_model,
                max_tokens=settings.mapping_max_tokens,
                temperature=0.1,
                system=self.SYSTEM_PROMPT,
                messages=[{
                    "role": "user",
                    "content": self._build_prompt(headers, sample_rows)
                }]
            )
            response_text = response.content[0].text

        except anthropic.APIError as e:
            logger.warning("classifier_api_error", error=str(e))
            raise ExternalServiceError(SERVICE_NAME, f"Claude API error: {e}") from e
        except (IndexError, AttributeError) as e:
            logger.warning("classifier_empty_response", error=str(e))
            raise ExternalServiceError(SERVICE_NAME, "Claude returned no text") from e

        suggestions = self._parse_response(response_text, headers)

        logger.info(
            "classifier_request_completed",
            columns=len(headers),
            suggestions=len(suggestions)
        )

        return suggestions

    def _build_prompt(self, headers: list[str], sample_rows: list[RawRow]) -> str:
        """Headers, sample values and the field list as a user message."""
        samples = [
            {h: row.get(h) for h in headers}
            for row in sample_rows[:CLASSIFIER_SAMPLE_ROWS]
        ]
        columns = "\n".join(f'{i}. "{h}"' for i, h in enumerate(headers, start=1))
        fields = "\n".join(
            f'- "{field.value}" ({label}){" [REQUIRED]" if field in REQUIRED_FIELDS else ""}'
            for field, label in FIELD_LABELS.items()
        )
        return (
            f"FILE COLUMNS:\n{columns}\n\n"
            f"SAMPLE ROWS:\n{json.dumps(samples, ensure_ascii=False, indent=2)}\n\n"
            f"FIELDS:\n{fields}"
        )

    def _parse_response(
        self,
        response_text: str,
        headers: list[str],
    ) -> list[MappingSuggestion]:
        """
        Extract suggestions from Claude's reply.

        Accepts a bare JSON object or one wrapped in a markdown code block.
        Headers are matched case-insensitively back to the file's own
        spelling; suggestions for headers not in the file are ignored.
        """
        json_text = _extract_json_object(response_text)
        if json_text is None:
            logger.warning("classifier_json_missing", response_preview=response_text[:300])
            raise ExternalServiceError(SERVICE_NAME, "Claude response contained no JSON")

        try:
            data = json.loads(json_text)
        except json.JSONDecodeError as e:
            logger.warning("classifier_json_invalid", error=str(e))
            raise ExternalServiceError(SERVICE_NAME, "Claude response was not valid JSON") from e

        raw_mappings = data.get("mappings") if isinstance(data, dict) else None
        if not isinstance(raw_mappings, list):
            raise ExternalServiceError(SERVICE_NAME, "Claude response has no 'mappings' list")

        by_lower = {h.lower().strip(): h for h in headers}
        valid_fields = {f.value for f in CanonicalField}
        suggestions = []

        for item in raw_mappings:
            if not isinstance(item, dict):
                continue
            header = by_lower.get(str(item.get("file_header", "")).lower().strip())
            field = item.get("target_field")
            if header is None or field not in valid_fields:
                continue
            try:
                suggestions.append(MappingSuggestion(
                    file_header=header,
                    target_field=field,
                    reason=str(item.get("reason") or ""),
                ))
            except PydanticValidationError:
                continue

        return suggestions


_CODE_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def _extract_json_object(text: str) -> Optional[str]:
    """Outermost JSON object, looking inside a code block first."""
    match = _CODE_BLOCK.search(text)
    if match:
        text = match.group(1)
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        return text[first:last + 1]
    return None


# Singleton instance
_classifier_service: Optional[MappingClassifierService] = None


def get_mapping_classifier_service() -> MappingClassifierService:
    """Get or create MappingClassifierService instance."""
    global _classifier_service
    if _classifier_service is None:
        _classifier_service = MappingClassifierService()
    return _classifier_service
