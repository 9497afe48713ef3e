"""Parses and validates manifest documents.

Validation collects every issue instead of stopping at the first one, so a team can
fix their manifest in one pass. Errors make the whole document invalid; warnings are
carried into the run's history and never block apply.
"""

import json
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from depsera.core.config import settings
from depsera.core.logging import ContextualLogger
from depsera.core.logging import logger as default_logger
from depsera.platform.manifest.exceptions import ManifestValidationError
from depsera.platform.manifest.url_safety import is_private_url
from depsera.schemas.manifest import (
    MANIFEST_VERSION,
    IssueSeverity,
    ManifestAliasEntry,
    ManifestAssociationEntry,
    ManifestCanonicalOverrideEntry,
    ManifestDocument,
    ManifestServiceEntry,
    ManifestValidationIssue,
)

ROOT_PATH = "(root)"


class ManifestValidator:
    """Turns raw manifest bytes into a ManifestDocument."""

    KNOWN_TOP_LEVEL_KEYS = ("version", "services", "aliases", "canonical_overrides", "associations")

    # Optional sections and the entry model for each
    OPTIONAL_SECTIONS: Dict[str, Type[BaseModel]] = {
        "aliases": ManifestAliasEntry,
        "canonical_overrides": ManifestCanonicalOverrideEntry,
        "associations": ManifestAssociationEntry,
    }

    def __init__(
        self,
        allow_private_urls: Optional[bool] = None,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the validator.

        Args:
            allow_private_urls: Suppress private-address warnings (defaults to settings)
            logger: Optional contextual logger
        """
        self.allow_private_urls = (
            allow_private_urls
            if allow_private_urls is not None
            else settings.MANIFEST_ALLOW_PRIVATE_URLS
        )
        self.logger = logger or default_logger.with_context(component="manifest_validator")

    def parse(self, raw: bytes) -> Tuple[ManifestDocument, List[ManifestValidationIssue]]:
        """Parse and validate a manifest body.

        Args:
            raw: Response body

        Returns:
            Tuple of (document, warnings)

        Raises:
            ManifestValidationError: If the body is not valid JSON or fails validation
        """
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
            raise ManifestValidationError(
                [_error(ROOT_PATH, "Invalid JSON: manifest could not be parsed")]
            ) from e
        return self.validate(data)

    def validate(self, data: Any) -> Tuple[ManifestDocument, List[ManifestValidationIssue]]:
        """Validate already-decoded manifest data.

        Args:
            data: Decoded JSON value

        Returns:
            Tuple of (document, warnings)

        Raises:
            ManifestValidationError: If any error-severity issue was found
        """
        errors: List[ManifestValidationIssue] = []
        warnings: List[ManifestValidationIssue] = []

        if not isinstance(data, dict):
            raise ManifestValidationError([_error(ROOT_PATH, "Manifest must be a JSON object")])

        self._check_structure(data, errors, warnings)

        services = self._validate_entries(
            data.get("services"), "services", ManifestServiceEntry, errors, warnings
        )
        self._check_services(services, errors, warnings)

        sections: Dict[str, List[Tuple[int, Any]]] = {}
        for section, model in self.OPTIONAL_SECTIONS.items():
            sections[section] = self._validate_entries(
                data.get(section), section, model, errors, warnings
            )

        self._check_duplicates(sections["aliases"], "aliases", "alias", errors)
        self._check_duplicates(
            sections["canonical_overrides"], "canonical_overrides", "canonical_name", errors
        )
        self._check_associations(sections["associations"], services, errors)

        if errors:
            self.logger.info(
                f"[ManifestValidator] Manifest rejected with {len(errors)} error(s), "
                f"{len(warnings)} warning(s)"
            )
            raise ManifestValidationError(errors, warnings)

        document = ManifestDocument(
            version=MANIFEST_VERSION,
            services=[entry for _, entry in services],
            aliases=[entry for _, entry in sections["aliases"]],
            canonical_overrides=[entry for _, entry in sections["canonical_overrides"]],
            associations=[entry for _, entry in sections["associations"]],
        )
        return document, warnings

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def _check_structure(
        self,
        data: Dict[str, Any],
        errors: List[ManifestValidationIssue],
        warnings: List[ManifestValidationIssue],
    ) -> None:
        if "version" not in data:
            errors.append(_error("version", "Field required"))
        elif type(data["version"]) is not int or data["version"] != MANIFEST_VERSION:
            errors.append(
                _error(
                    "version",
                    f"Unsupported manifest version {data['version']!r}, "
                    f"expected {MANIFEST_VERSION}",
                )
            )

        if "services" not in data:
            errors.append(_error("services", "Field required"))
        elif not isinstance(data["services"], list):
            errors.append(_error("services", "Must be an array"))

        for section in self.OPTIONAL_SECTIONS:
            if section in data and not isinstance(data[section], list):
                errors.append(_error(section, "Must be an array"))

        for key in data:
            if key not in self.KNOWN_TOP_LEVEL_KEYS:
                warnings.append(_warning(key, "Unknown top-level key is ignored"))

    def _validate_entries(
        self,
        raw_entries: Any,
        section: str,
        model: Type[BaseModel],
        errors: List[ManifestValidationIssue],
        warnings: List[ManifestValidationIssue],
    ) -> List[Tuple[int, Any]]:
        """Validate each entry of a section, returning (index, entry) for valid ones."""
        if not isinstance(raw_entries, list):
            return []

        valid: List[Tuple[int, Any]] = []
        known_fields = set(model.model_fields)
        for index, raw in enumerate(raw_entries):
            prefix = f"{section}[{index}]"
            if not isinstance(raw, dict):
                errors.append(_error(prefix, "Entry must be an object"))
                continue

            for key in raw:
                if key not in known_fields:
                    warnings.append(_warning(f"{prefix}.{key}", "Unknown field is ignored"))

            try:
                valid.append((index, model.model_validate(raw)))
            except ValidationError as e:
                errors.extend(_issues_from_validation_error(prefix, e))
        return valid

    # ------------------------------------------------------------------
    # Cross-entry checks
    # ------------------------------------------------------------------

    def _check_services(
        self,
        services: List[Tuple[int, ManifestServiceEntry]],
        errors: List[ManifestValidationIssue],
        warnings: List[ManifestValidationIssue],
    ) -> None:
        self._check_duplicates(services, "services", "key", errors)

        by_name: Dict[str, List[int]] = defaultdict(list)
        for index, entry in services:
            by_name[entry.name].append(index)
        for name, indexes in by_name.items():
            for index in indexes[1:]:
                warnings.append(
                    _warning(
                        f"services[{index}].name",
                        f'Duplicate service name "{name}" (first at services[{indexes[0]}])',
                    )
                )

        if self.allow_private_urls:
            return
        for index, entry in services:
            if is_private_url(entry.health_endpoint):
                warnings.append(
                    _warning(
                        f"services[{index}].health_endpoint",
                        "Health endpoint targets a private or local address",
                    )
                )

    def _check_duplicates(
        self,
        entries: List[Tuple[int, Any]],
        section: str,
        field: str,
        errors: List[ManifestValidationIssue],
    ) -> None:
        first_seen: Dict[str, int] = {}
        for index, entry in entries:
            value = getattr(entry, field)
            if value in first_seen:
                errors.append(
                    _error(
                        f"{section}[{index}].{field}",
                        f'Duplicate {field} "{value}" (first at {section}[{first_seen[value]}])',
                    )
                )
            else:
                first_seen[value] = index

    def _check_associations(
        self,
        associations: List[Tuple[int, ManifestAssociationEntry]],
        services: List[Tuple[int, ManifestServiceEntry]],
        errors: List[ManifestValidationIssue],
    ) -> None:
        service_keys = {entry.key for _, entry in services}
        seen: Dict[tuple, int] = {}
        for index, entry in associations:
            prefix = f"associations[{index}]"
            if entry.service_key not in service_keys:
                errors.append(
                    _error(
                        f"{prefix}.service_key",
                        f'Unknown service key "{entry.service_key}", must reference a '
                        "service in this manifest",
                    )
                )
            if entry.natural_key in seen:
                errors.append(
                    _error(
                        prefix,
                        "Duplicate association (first at "
                        f"associations[{seen[entry.natural_key]}])",
                    )
                )
            else:
                seen[entry.natural_key] = index


def _error(path: str, message: str) -> ManifestValidationIssue:
    return ManifestValidationIssue(severity=IssueSeverity.ERROR, path=path, message=message)


def _warning(path: str, message: str) -> ManifestValidationIssue:
    return ManifestValidationIssue(severity=IssueSeverity.WARNING, path=path, message=message)


def _issues_from_validation_error(
    prefix: str, exc: ValidationError
) -> List[ManifestValidationIssue]:
    issues = []
    for err in exc.errors():
        path = prefix
        for part in err["loc"]:
            path += f"[{part}]" if isinstance(part, int) else f".{part}"
        message = err["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        issues.append(_error(path, message))
    return issues
