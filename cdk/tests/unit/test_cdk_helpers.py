"""Tests for CDK helper utilities."""

import os
from unittest.mock import patch

from cdk.helpers import (
    REGION_ABBREVIATIONS,
    get_region,
    get_region_abbrev,
    make_resource_namer,
    passthrough_environment,
)


class TestRegionAbbreviations:
    """Tests for REGION_ABBREVIATIONS constant."""

    def test_eu_west_1(self):
        """EU West 1 abbreviation is ew1."""
        assert REGION_ABBREVIATIONS["eu-west-1"] == "ew1"

    def test_eu_south_2(self):
        """EU South 2 (Spain) abbreviation is es2."""
        assert REGION_ABBREVIATIONS["eu-south-2"] == "es2"


class TestGetRegion:
    """Tests for get_region function."""

    def test_returns_aws_region_env_var(self):
        """Returns AWS_REGION environment variable when set."""
        with patch.dict(os.environ, {"AWS_REGION": "eu-central-1"}, clear=True):
            assert get_region() == "eu-central-1"

    def test_returns_cdk_default_region_if_aws_region_not_set(self):
        """Returns CDK_DEFAULT_REGION when AWS_REGION is not set."""
        with patch.dict(os.environ, {"CDK_DEFAULT_REGION": "us-east-1"}, clear=True):
            assert get_region() == "us-east-1"

    def test_returns_eu_west_1_as_default(self):
        """Returns eu-west-1 when no region environment variables are set."""
        with patch.dict(os.environ, {}, clear=True):
            assert get_region() == "eu-west-1"


class TestGetRegionAbbrev:
    """Tests for get_region_abbrev function."""

    def test_known_region(self):
        """Known regions use the mapping."""
        assert get_region_abbrev("us-west-2") == "uw2"

    def test_unknown_region_uses_prefix(self):
        """Unknown regions fall back to the first three characters."""
        assert get_region_abbrev("me-central-1") == "me-"

    def test_reads_environment(self):
        """Without an argument the region comes from the environment."""
        with patch.dict(os.environ, {"AWS_REGION": "eu-west-2"}, clear=True):
            assert get_region_abbrev() == "ew2"


class TestMakeResourceNamer:
    """Tests for make_resource_namer function."""

    def test_appends_region_and_env(self):
        """Names get the {name}-{region}-{env} pattern."""
        rn = make_resource_namer("ew1", "dev")
        assert rn("cachao-media") == "cachao-media-ew1-dev"

    def test_overrides(self):
        """Region and environment can be overridden per call."""
        rn = make_resource_namer("ew1", "dev")
        assert rn("cachao-api", env="prod") == "cachao-api-ew1-prod"


class TestPassthroughEnvironment:
    """Tests for passthrough_environment function."""

    def test_only_set_values_copied(self):
        """Unset and empty settings are left out."""
        env = {"DB_HOST": "db.internal", "DB_PASSWORD": "", "STRIPE_SECRET_KEY": "sk_test_1", "OTHER": "x"}
        with patch.dict(os.environ, env, clear=True):
            assert passthrough_environment() == {"DB_HOST": "db.internal", "STRIPE_SECRET_KEY": "sk_test_1"}
