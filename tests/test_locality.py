"""Tests for units/locality.py."""

import pytest
from stacklayer.core.errors import LocalityMismatchError, PlanningError
from stacklayer.units import Locality, ResourceIntent, declare
from stacklayer.units.locality import EDGE_REGION, check_intent_locality, parse_arn, pinned_region


class TestParseArn:
    """Tests for parse_arn()."""

    def test_parses_fields(self):
        """Test region and account are extracted."""
        arn = parse_arn("arn:aws:acm:us-east-1:111111111111:certificate/abc")

        assert arn == {"partition": "aws", "service": "acm", "region": "us-east-1", "account": "111111111111"}

    def test_global_arn(self):
        """Test ARNs without region/account give empty strings."""
        arn = parse_arn("arn:aws:s3:::my-bucket")

        assert arn["region"] == ""
        assert arn["account"] == ""

    def test_not_an_arn(self):
        """Test ordinary strings are not ARNs."""
        assert parse_arn("example.com") is None


class TestPinnedRegion:
    """Tests for pinned_region()."""

    def test_distribution_pinned_to_edge(self):
        assert pinned_region(ResourceIntent("cdn_distribution", "Cdn")) == EDGE_REGION

    def test_cloudfront_web_acl_pinned(self):
        assert pinned_region(ResourceIntent("web_acl", "Acl", {"scope": "CLOUDFRONT"})) == EDGE_REGION

    def test_regional_web_acl_not_pinned(self):
        assert pinned_region(ResourceIntent("web_acl", "Acl", {"scope": "REGIONAL"})) is None


class TestCheckIntentLocality:
    """Tests for check_intent_locality()."""

    def test_distribution_outside_edge_region(self, primary):
        """Test a CloudFront distribution cannot live in a regional unit."""
        with pytest.raises(LocalityMismatchError, match="must be provisioned in us-east-1"):
            check_intent_locality("Compute", primary, ResourceIntent("cdn_distribution", "Cdn"))

    def test_distribution_in_edge_region(self, edge):
        """Test the same intent is valid in the edge region."""
        check_intent_locality("Edge", edge, ResourceIntent("cdn_distribution", "Cdn"))

    def test_certificate_from_other_region(self, primary):
        """Test an ARN property from another region is rejected."""
        intent = ResourceIntent(
            "certificate", "Cert", {"certificate_arn": "arn:aws:acm:us-east-1:111111111111:certificate/x"}
        )
        with pytest.raises(LocalityMismatchError, match="references region us-east-1"):
            check_intent_locality("Compute", primary, intent)

    def test_nested_arn_from_other_account(self, primary):
        """Test ARNs nested in lists are checked against the account."""
        intent = ResourceIntent(
            "listener",
            "Https",
            {"certificates": [{"arn": "arn:aws:acm:ap-southeast-2:999999999999:certificate/x"}]},
        )
        with pytest.raises(LocalityMismatchError, match="account 999999999999"):
            check_intent_locality("Compute", primary, intent)

    def test_explicit_intent_locality_must_match(self, primary):
        """Test an intent pinned to another locality is rejected."""
        intent = ResourceIntent("bucket", "B", locality=Locality("111111111111", "eu-west-1"))
        with pytest.raises(LocalityMismatchError):
            check_intent_locality("U", primary, intent)

    def test_declare_raises_planning_error(self, primary):
        """Test declare() surfaces locality problems as planning errors."""
        with pytest.raises(PlanningError):
            declare("Compute", primary, [ResourceIntent("web_acl", "Acl", {"scope": "CLOUDFRONT"})])
