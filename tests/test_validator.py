from kubemend.validator.validator import ManifestValidator, validate_content

DEPLOYMENT = """apiVersion: apps/v1
kind: Deployment
metadata:
  name: web
spec:
  replicas: "2"
  selector:
    matchLabels:
      app: web
  template:
    metadata:
      labels:
        app: web
    spec:
      containers:
      - name: web
        image: nginx
        ports:
        - containerPort: 80
        livenessProbe:
          httpGet:
            path: /healthz
            port: http
"""


def test_valid_manifest():
    report = validate_content(DEPLOYMENT)
    assert report.is_valid
    assert report.kind == "Deployment"
    assert report.api_version == "apps/v1"
    assert report.schema_errors == []
    assert report.advisories == []


def test_missing_identity_fields():
    report = validate_content("kind: ConfigMap\ndata:\n  greeting: hello\n")
    assert report.is_valid is False
    assert report.schema_errors == [
        "Document 1: Missing required top-level field 'apiVersion'",
        "Document 1: Missing required top-level field 'metadata'",
    ]
    assert "Document 1: Recommended field 'metadata.name' is missing" in report.advisories


def test_recommended_paths_are_advisory():
    report = validate_content("apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: web\n")
    assert report.is_valid
    assert "Document 1: Recommended field 'spec.template.spec.containers' is missing" in report.advisories


def test_unregistered_kind_and_unusual_api_version():
    report = validate_content(
        "apiVersion: example.com/v1\nkind: Widget\nmetadata:\n  name: w\n"
        "---\n"
        "apiVersion: extensions/v1beta1\nkind: Deployment\nmetadata:\n  name: old\n"
    )
    assert report.is_valid
    assert "Document 1: Kind 'Widget' is not registered; basic validation only" in report.advisories
    assert any(a.startswith("Document 2: Deployment is usually served as 'apps/v1'") for a in report.advisories)


def test_field_values_are_checked():
    report = validate_content(
        "apiVersion: v1\nkind: Pod\nmetadata:\n  name: p\nspec:\n  restartPolicy: Sometimes\n"
        "  containers:\n  - name: c\n    image: busybox\n    ports:\n    - containerPort: 70000\n"
    )
    assert report.is_valid is False
    assert report.schema_errors == [
        "Document 1: spec.restartPolicy: Value must be one of: Always, OnFailure, Never",
        "Document 1: spec.containers.0.ports.0.containerPort: Value 70000 is above maximum 65535",
    ]


def test_parse_errors_are_reported():
    report = ManifestValidator().validate('metadata:\n  name: "open\n')
    assert report.is_valid is False
    assert len(report.parse_errors) == 1
    assert report.schema_errors == []


def test_top_level_must_be_a_mapping():
    report = validate_content("- a\n- b\n")
    assert report.schema_errors == ["Document 1: Top level must be a mapping"]


def test_report_dict_shape():
    payload = validate_content(DEPLOYMENT).to_dict()
    assert payload["isValid"] is True
    assert payload["kind"] == "Deployment"
    assert set(payload) == {"isValid", "parseErrors", "diagnostics", "schemaErrors", "kind",
                            "apiVersion", "advisories"}
