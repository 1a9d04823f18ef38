"""
Unit tests for the resolution engine.
"""

import pytest

from service_decisions.app.models import ConfigBundle
from service_decisions.app.resolution import (
    get_unit_key_value, resolve_internal, resolve_parameters
)

DEFAULTS = {
    "ui.color": "#FFF",
    "ui.size": "sm",
    "pricing.discount": -1,
    "rec.strategy": "none",
}


class TestResolveParameters:
    """Test cases for parameter resolution."""

    def test_no_bundle_returns_caller_defaults(self):
        """Test resolution without a bundle."""
        assert resolve_parameters(None, {"userId": "user-abc"}, DEFAULTS) == DEFAULTS

    def test_missing_unit_key_returns_caller_defaults(self, bundle):
        """Test resolution without a unit key in the context."""
        assert resolve_parameters(bundle, {"country": "US"}, DEFAULTS) == DEFAULTS

    def test_empty_unit_key_returns_caller_defaults(self, bundle):
        assert resolve_parameters(bundle, {"userId": ""}, DEFAULTS) == DEFAULTS

    def test_bucket_based_override(self, bundle):
        """Test overrides follow the unit's bucket in each layer."""
        context = {"userId": "user-abc", "country": "US"}
        result = resolve_parameters(bundle, context, DEFAULTS)

        assert result["ui.color"] == "#F00"      # layer_ui bucket 551
        assert result["pricing.discount"] == 20  # layer_pricing bucket 913

        context = {"userId": "user-xyz", "country": "US"}
        result = resolve_parameters(bundle, context, DEFAULTS)

        assert result["ui.color"] == "#000"      # layer_ui bucket 214
        assert result["pricing.discount"] == 10  # layer_pricing bucket 42

    def test_bundle_default_beats_caller_default(self, bundle):
        """Test bundle defaults apply where no allocation overrides."""
        result = resolve_parameters(bundle, {"userId": "user-abc"}, DEFAULTS)
        assert result["ui.size"] == "md"

    def test_failed_condition_keeps_bundle_default(self, bundle):
        result = resolve_parameters(bundle, {"userId": "user-abc", "country": "DE"}, DEFAULTS)
        assert result["pricing.discount"] == 0

    def test_unknown_parameter_keeps_caller_default(self, bundle):
        defaults = dict(DEFAULTS, **{"checkout.flow": "classic"})
        result = resolve_parameters(bundle, {"userId": "user-abc"}, defaults)
        assert result["checkout.flow"] == "classic"

    def test_only_requested_parameters_returned(self, bundle):
        result = resolve_parameters(bundle, {"userId": "user-abc"}, {"ui.color": "#FFF"})
        assert result == {"ui.color": "#F00"}

    def test_does_not_mutate_defaults(self, bundle):
        defaults = dict(DEFAULTS)
        resolve_parameters(bundle, {"userId": "user-abc", "country": "US"}, defaults)
        assert defaults == DEFAULTS

    def test_numeric_unit_key(self, bundle_payload):
        """Test numeric unit keys are stringified before hashing."""
        bundle = ConfigBundle.model_validate(bundle_payload)
        by_int = resolve_internal(bundle, {"userId": 123}, DEFAULTS)
        by_str = resolve_internal(bundle, {"userId": "123"}, DEFAULTS)

        assert by_int.unit_key_value == "123"
        assert [layer.bucket for layer in by_int.layers] == [layer.bucket for layer in by_str.layers]

    def test_get_unit_key_value(self, bundle):
        assert get_unit_key_value(bundle, {"userId": "user-abc"}) == "user-abc"
        assert get_unit_key_value(bundle, {"userId": True}) == "true"
        assert get_unit_key_value(bundle, {}) is None


class TestPolicyFiltering:
    """Test cases for policy eligibility."""

    def test_paused_policy_skipped(self, bundle_payload):
        bundle_payload["layers"][0]["policies"][0]["state"] = "paused"
        bundle = ConfigBundle.model_validate(bundle_payload)

        result = resolve_internal(bundle, {"userId": "user-abc"}, DEFAULTS)

        assert result.assignments["ui.color"] == "#000"
        assert result.layers[0].policy_id is None

    def test_eligible_bucket_range(self, bundle_payload):
        """Test a policy restricted to a bucket sub-range."""
        bundle_payload["layers"][0]["policies"][0]["eligibleBucketRange"] = {"start": 0, "end": 499}
        bundle = ConfigBundle.model_validate(bundle_payload)

        abc = resolve_internal(bundle, {"userId": "user-abc"}, DEFAULTS)  # bucket 551
        xyz = resolve_internal(bundle, {"userId": "user-xyz"}, DEFAULTS)  # bucket 214

        assert abc.layers[0].policy_id is None
        assert xyz.layers[0].policy_id == "policy_ui_color"

    def test_first_matching_policy_wins(self, bundle_payload):
        layer = bundle_payload["layers"][0]
        layer["policies"].insert(0, {
            "id": "policy_ui_blue",
            "state": "running",
            "allocations": [
                {"id": "alloc_blue", "name": "blue", "bucketRange": [0, 999], "overrides": {"ui.color": "#00F"}}
            ],
            "conditions": [{"field": "plan", "op": "eq", "value": "pro"}],
        })
        bundle = ConfigBundle.model_validate(bundle_payload)

        pro = resolve_internal(bundle, {"userId": "user-abc", "plan": "pro"}, DEFAULTS)
        free = resolve_internal(bundle, {"userId": "user-abc", "plan": "free"}, DEFAULTS)

        assert pro.assignments["ui.color"] == "#00F"
        assert pro.layers[0].policy_id == "policy_ui_blue"
        assert free.assignments["ui.color"] == "#F00"
        assert free.layers[0].policy_id == "policy_ui_color"

    def test_bucket_gap_matches_nothing(self, bundle_payload):
        allocations = bundle_payload["layers"][0]["policies"][0]["allocations"]
        allocations[1]["bucketRange"] = [500, 549]
        bundle = ConfigBundle.model_validate(bundle_payload)

        result = resolve_internal(bundle, {"userId": "user-abc"}, DEFAULTS)  # bucket 551

        assert result.assignments["ui.color"] == "#000"
        assert result.layers[0].policy_id is None

    def test_override_outside_layer_params_is_ignored(self, bundle_payload):
        allocations = bundle_payload["layers"][0]["policies"][0]["allocations"]
        allocations[1]["overrides"]["pricing.discount"] = 99
        bundle = ConfigBundle.model_validate(bundle_payload)

        result = resolve_parameters(bundle, {"userId": "user-abc"}, {"ui.color": "#FFF"})
        assert "pricing.discount" not in result


class TestLayerMetadata:
    """Test cases for per-layer resolution records."""

    def test_one_record_per_layer(self, bundle):
        result = resolve_internal(bundle, {"userId": "user-abc", "country": "US"}, DEFAULTS)

        assert [layer.layer_id for layer in result.layers] == ["layer_ui", "layer_pricing", "layer_rec"]
        ui, pricing, _ = result.layers
        assert ui.bucket == 551
        assert ui.policy_id == "policy_ui_color"
        assert ui.allocation_id == "alloc_red"
        assert ui.allocation_name == "red"
        assert pricing.bucket == 913
        assert pricing.allocation_name == "high"

    def test_attribution_only_layers(self, bundle):
        """Test layers without requested parameters still resolve."""
        result = resolve_internal(bundle, {"userId": "user-abc", "country": "US"}, {"ui.color": "#FFF"})

        ui, pricing, rec = result.layers
        assert ui.attribution_only is None
        assert pricing.attribution_only is True
        assert pricing.policy_id == "policy_pricing"
        assert pricing.allocation_name == "high"
        assert rec.attribution_only is True
        assert "pricing.discount" not in result.assignments

    def test_unmatched_layer_recorded(self, bundle):
        result = resolve_internal(bundle, {"userId": "user-abc", "country": "DE"}, DEFAULTS)

        pricing = result.layers[1]
        assert pricing.bucket == 913
        assert pricing.policy_id is None
        assert pricing.allocation_id is None

    def test_matched_policies_tracked(self, bundle):
        result = resolve_internal(bundle, {"userId": "user-abc", "country": "US"}, DEFAULTS)
        assert [policy.id for policy in result.matched_policies] == ["policy_ui_color", "policy_pricing"]


class TestBundleModePolicies:
    """Test cases for per-entity policies resolved from bundle state."""

    def test_entity_weights_applied(self, bundle):
        result = resolve_parameters(bundle, {"userId": "user-abc", "productId": "p1"}, DEFAULTS)
        assert result["rec.strategy"] == "similar"

    def test_global_prior_applied(self, bundle):
        result = resolve_parameters(bundle, {"userId": "user-abc", "productId": "p2"}, DEFAULTS)
        assert result["rec.strategy"] == "trending"

    def test_missing_entity_key_skips_policy(self, bundle):
        result = resolve_internal(bundle, {"userId": "user-abc"}, DEFAULTS)
        assert result.assignments["rec.strategy"] == "popular"
        assert result.layers[2].policy_id is None

    def test_dynamic_allocation_bundle_mode(self, bundle_payload):
        policy = bundle_payload["layers"][2]["policies"][0]
        policy["entityConfig"]["dynamicAllocations"] = {"countKey": "slotCount"}
        bundle = ConfigBundle.model_validate(bundle_payload)

        result = resolve_internal(bundle, {"userId": "user-abc", "productId": "p1", "slotCount": 2}, DEFAULTS)

        rec = result.layers[2]
        assert rec.policy_id == "policy_rec"
        assert rec.allocation_id == "policy_rec_dynamic_0"
        assert rec.allocation_name == "0"
        # Dynamic allocations carry no overrides
        assert result.assignments["rec.strategy"] == "popular"


class TestBundleValidation:
    """Test cases for bundle invariants checked at load time."""

    def test_duplicate_parameter_key(self, bundle_payload):
        bundle_payload["parameters"].append(dict(bundle_payload["parameters"][0]))
        with pytest.raises(ValueError):
            ConfigBundle.model_validate(bundle_payload)

    def test_unknown_layer_reference(self, bundle_payload):
        bundle_payload["parameters"][0]["layerId"] = "layer_missing"
        with pytest.raises(ValueError):
            ConfigBundle.model_validate(bundle_payload)

    def test_bucket_count_must_be_positive(self, bundle_payload):
        bundle_payload["hashing"]["bucketCount"] = 0
        with pytest.raises(ValueError):
            ConfigBundle.model_validate(bundle_payload)
