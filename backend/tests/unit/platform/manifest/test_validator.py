"""Tests for manifest parsing and validation."""

import json

import pytest

from depsera.platform.manifest.exceptions import ManifestValidationError
from depsera.platform.manifest.validator import ManifestValidator


def service(key: str, /, **overrides):
    entry = {
        "key": key,
        "name": key.title(),
        "health_endpoint": f"https://{key}.example.com/health",
    }
    entry.update(overrides)
    return entry


@pytest.fixture
def validator():
    """Validator that warns on private addresses."""
    return ManifestValidator(allow_private_urls=False)


def errors_of(validator, document) -> list:
    with pytest.raises(ManifestValidationError) as exc_info:
        validator.validate(document)
    return exc_info.value.messages


def test_valid_manifest_parses(validator):
    """Test that a complete manifest produces a document and no warnings."""
    raw = json.dumps(
        {
            "version": 1,
            "services": [service("api", poll_interval_ms=10000, schema_config={"a": 1})],
            "aliases": [{"alias": "pg-main", "canonical_name": "postgres"}],
            "canonical_overrides": [{"canonical_name": "postgres", "impact": "High"}],
            "associations": [
                {
                    "service_key": "api",
                    "dependency_name": "postgres",
                    "linked_service_key": "billing/db",
                    "association_type": "database",
                }
            ],
        }
    ).encode()

    document, warnings = validator.parse(raw)

    assert warnings == []
    assert [s.key for s in document.services] == ["api"]
    assert document.services[0].poll_interval_ms == 10000
    assert document.aliases[0].canonical_name == "postgres"
    assert document.canonical_overrides[0].impact == "High"
    assert document.associations[0].natural_key == ("api", "postgres", "billing/db")


def test_invalid_json(validator):
    """Test that unparseable bodies are a single root error."""
    with pytest.raises(ManifestValidationError) as exc_info:
        validator.parse(b"{not json")

    assert exc_info.value.messages == ["(root): Invalid JSON: manifest could not be parsed"]


def test_deeply_nested_json_is_invalid(validator):
    """Test that nesting beyond the decoder's depth is reported like any parse failure."""
    with pytest.raises(ManifestValidationError) as exc_info:
        validator.parse(b"[" * 100_000 + b"]" * 100_000)

    assert exc_info.value.messages == ["(root): Invalid JSON: manifest could not be parsed"]


def test_root_must_be_object(validator):
    """Test that a JSON array is rejected."""
    assert errors_of(validator, []) == ["(root): Manifest must be a JSON object"]


@pytest.mark.parametrize("version", [2, "1", True, None])
def test_unsupported_version(validator, version):
    """Test that only the integer version 1 is accepted."""
    messages = errors_of(validator, {"version": version, "services": []})

    assert len(messages) == 1
    assert messages[0].startswith("version: Unsupported manifest version")


def test_missing_version_and_services(validator):
    """Test that both required top-level fields are reported."""
    messages = errors_of(validator, {})

    assert "version: Field required" in messages
    assert "services: Field required" in messages


def test_sections_must_be_arrays(validator):
    """Test that non-array sections are errors."""
    messages = errors_of(validator, {"version": 1, "services": {}, "aliases": "x"})

    assert "services: Must be an array" in messages
    assert "aliases: Must be an array" in messages


def test_all_problems_are_reported(validator):
    """Test that validation collects every issue instead of stopping at the first."""
    messages = errors_of(
        validator,
        {
            "version": 1,
            "services": [
                service("api"),
                service("Bad Key"),
                {"key": "worker", "name": "Worker"},
                service("api", name="Other"),
                "not-an-object",
            ],
        },
    )

    assert any(m.startswith("services[1].key:") for m in messages)
    assert "services[2].health_endpoint: Field required" in messages
    assert any(m.startswith("services[3].key: Duplicate key") for m in messages)
    assert "services[4]: Entry must be an object" in messages


@pytest.mark.parametrize(
    "overrides,path",
    [
        ({"health_endpoint": "ftp://api.example.com"}, "services[0].health_endpoint"),
        ({"metrics_endpoint": "not a url"}, "services[0].metrics_endpoint"),
        ({"poll_interval_ms": 100}, "services[0].poll_interval_ms"),
        ({"poll_interval_ms": 4_000_000}, "services[0].poll_interval_ms"),
        ({"poll_interval_ms": "30000"}, "services[0].poll_interval_ms"),
        ({"name": "   "}, "services[0].name"),
        ({"key": "x" * 129}, "services[0].key"),
    ],
)
def test_service_field_errors(validator, overrides, path):
    """Test field-level validation of service entries."""
    messages = errors_of(validator, {"version": 1, "services": [service("api", **overrides)]})

    assert any(m.startswith(f"{path}:") for m in messages)


def test_validator_message_has_no_value_error_prefix(validator):
    """Test that custom validator messages are rendered without pydantic's prefix."""
    messages = errors_of(
        validator, {"version": 1, "services": [service("api", health_endpoint="nope")]}
    )

    assert messages == ["services[0].health_endpoint: must be a valid http or https URL"]


def test_null_poll_interval_means_default(validator):
    """Test that an explicit null poll interval is treated as absent."""
    document, _ = validator.validate(
        {"version": 1, "services": [service("api", poll_interval_ms=None)]}
    )

    assert "poll_interval_ms" not in document.services[0].model_fields_set


def test_duplicate_aliases_and_overrides(validator):
    """Test that metadata natural keys must be unique."""
    messages = errors_of(
        validator,
        {
            "version": 1,
            "services": [],
            "aliases": [
                {"alias": "pg", "canonical_name": "postgres"},
                {"alias": "pg", "canonical_name": "postgresql"},
            ],
            "canonical_overrides": [
                {"canonical_name": "postgres", "impact": "High"},
                {"canonical_name": "postgres", "contact": {"team": "dba"}},
            ],
        },
    )

    assert any(m.startswith("aliases[1].alias: Duplicate alias") for m in messages)
    assert any(
        m.startswith("canonical_overrides[1].canonical_name: Duplicate canonical_name")
        for m in messages
    )


def test_override_requires_contact_or_impact(validator):
    """Test that an override with neither contact nor impact is rejected."""
    messages = errors_of(
        validator,
        {"version": 1, "services": [], "canonical_overrides": [{"canonical_name": "redis"}]},
    )

    assert messages == [
        "canonical_overrides[0]: at least one of contact or impact is required"
    ]


def test_association_checks(validator):
    """Test association references, types and duplicates."""
    association = {
        "service_key": "api",
        "dependency_name": "postgres",
        "linked_service_key": "db",
        "association_type": "database",
    }
    messages = errors_of(
        validator,
        {
            "version": 1,
            "services": [service("api")],
            "associations": [
                association,
                association,
                {**association, "service_key": "ghost"},
                {**association, "linked_service_key": "cache", "association_type": "magic"},
            ],
        },
    )

    assert any(m.startswith("associations[1]: Duplicate association") for m in messages)
    assert any(
        m.startswith('associations[2].service_key: Unknown service key "ghost"')
        for m in messages
    )
    assert any(m.startswith("associations[3].association_type:") for m in messages)


def test_warnings_do_not_block(validator):
    """Test that unknown keys, duplicate names and private endpoints only warn."""
    document, warnings = validator.validate(
        {
            "version": 1,
            "owner": "payments",
            "services": [
                service("api", name="API", extra_field=True),
                service("api-v2", name="API"),
                service("internal", health_endpoint="http://10.1.2.3/health"),
            ],
        }
    )

    rendered = [str(w) for w in warnings]
    assert len(document.services) == 3
    assert "owner: Unknown top-level key is ignored" in rendered
    assert "services[0].extra_field: Unknown field is ignored" in rendered
    assert any(w.startswith("services[1].name: Duplicate service name") for w in rendered)
    assert (
        "services[2].health_endpoint: Health endpoint targets a private or local address"
        in rendered
    )


def test_private_endpoint_warning_suppressed_when_allowed():
    """Test that allowing private URLs silences the warning."""
    validator = ManifestValidator(allow_private_urls=True)

    _, warnings = validator.validate(
        {"version": 1, "services": [service("api", health_endpoint="http://localhost/health")]}
    )

    assert warnings == []


def test_validation_error_carries_warnings(validator):
    """Test that warnings found alongside errors are kept on the exception."""
    with pytest.raises(ManifestValidationError) as exc_info:
        validator.validate({"version": 1, "services": [service("Bad")], "owner": "x"})

    assert [str(w) for w in exc_info.value.warnings] == [
        "owner: Unknown top-level key is ignored"
    ]
