"""
Shared fixtures for decisions service tests.

Bucket positions used throughout (bucket count 1000):

    unit       layer_ui  layer_pricing
    user-abc   551       913
    user-xyz   214       42
    user-123   871       177
"""

import copy

import pytest

from service_decisions.app.models import ConfigBundle

SAMPLE_BUNDLE = {
    "version": "v42",
    "orgId": "org_1",
    "projectId": "proj_1",
    "env": "production",
    "hashing": {"unitKey": "userId", "bucketCount": 1000},
    "parameters": [
        {"key": "ui.color", "type": "string", "default": "#000", "layerId": "layer_ui", "namespace": "ui"},
        {"key": "ui.size", "type": "string", "default": "md", "layerId": "layer_ui", "namespace": "ui"},
        {"key": "pricing.discount", "type": "number", "default": 0, "layerId": "layer_pricing", "namespace": "pricing"},
        {"key": "rec.strategy", "type": "string", "default": "popular", "layerId": "layer_rec", "namespace": "rec"},
    ],
    "layers": [
        {
            "id": "layer_ui",
            "policies": [
                {
                    "id": "policy_ui_color",
                    "state": "running",
                    "kind": "static",
                    "allocations": [
                        {"id": "alloc_control", "name": "control", "bucketRange": [0, 499],
                         "overrides": {"ui.color": "#000"}},
                        {"id": "alloc_red", "name": "red", "bucketRange": [500, 999],
                         "overrides": {"ui.color": "#F00"}},
                    ],
                    "conditions": [],
                }
            ],
        },
        {
            "id": "layer_pricing",
            "policies": [
                {
                    "id": "policy_pricing",
                    "state": "running",
                    "kind": "static",
                    "allocations": [
                        {"id": "alloc_low", "name": "low", "bucketRange": [0, 499],
                         "overrides": {"pricing.discount": 10}},
                        {"id": "alloc_high", "name": "high", "bucketRange": [500, 999],
                         "overrides": {"pricing.discount": 20}},
                    ],
                    "conditions": [{"field": "country", "op": "eq", "value": "US"}],
                    "contextLogging": {"allowedFields": ["country", "plan"]},
                }
            ],
        },
        {
            "id": "layer_rec",
            "policies": [
                {
                    "id": "policy_rec",
                    "state": "running",
                    "kind": "adaptive",
                    "allocations": [
                        {"id": "alloc_similar", "name": "similar", "bucketRange": [0, 999],
                         "overrides": {"rec.strategy": "similar"}},
                        {"id": "alloc_trending", "name": "trending", "bucketRange": [0, 999],
                         "overrides": {"rec.strategy": "trending"}},
                    ],
                    "conditions": [],
                    "entityConfig": {"entityKeys": ["productId"], "resolutionMode": "bundle"},
                }
            ],
        },
    ],
    "entityState": {
        "policy_rec": {
            "_global": {"entityId": "_global", "weights": [0.0, 1.0]},
            "entities": {
                "p1": {"entityId": "p1", "weights": [1.0, 0.0]},
            },
        }
    },
}


@pytest.fixture
def bundle_payload():
    """Fresh copy of the sample bundle payload."""
    return copy.deepcopy(SAMPLE_BUNDLE)


@pytest.fixture
def bundle(bundle_payload):
    """Parsed sample bundle."""
    return ConfigBundle.model_validate(bundle_payload)


@pytest.fixture
def edge_bundle(bundle_payload):
    """Sample bundle with the recommendation policy resolved at the edge."""
    rec_policy = bundle_payload["layers"][2]["policies"][0]
    rec_policy["entityConfig"]["resolutionMode"] = "edge"
    rec_policy["entityConfig"]["edgeTimeoutMs"] = 150
    return ConfigBundle.model_validate(bundle_payload)
