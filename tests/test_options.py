"""Tests for attach_credentials.options."""

from __future__ import annotations

import pytest

from attach_credentials.encoders import make_auth_params
from attach_credentials.exceptions import ConfigError
from attach_credentials.expiry import are_credentials_expired, with_leeway
from attach_credentials.options import AttachCredentialsOptions, build_options
from attach_credentials.refresh import StrategyRegistry, refresh_credentials
from attach_credentials.store import MemoryIdentityStore

from conftest import ScriptedStrategy


class TestBuildOptions:
    def test_defaults(self) -> None:
        options = build_options(provider_name="github")
        assert options.remove_subject_prop is True
        assert options.subject_prop_name == "user"
        assert options.credentials_method_name == "get_credentials_for_provider"
        assert options.init_credentials is None
        assert options.are_credentials_expired is are_credentials_expired
        assert options.refresh_credentials is refresh_credentials
        assert options.make_auth_params is make_auth_params
        assert isinstance(options.strategies, StrategyRegistry)
        assert options.identity_store is None
        assert options.init_wait_timeout == 10.0

    def test_from_mapping_with_overrides(self) -> None:
        options = build_options({"provider_name": "github", "subject_prop_name": "owner"}, remove_subject_prop=False)
        assert options.subject_prop_name == "owner"
        assert options.remove_subject_prop is False

    def test_overrides_existing_options(self) -> None:
        store = MemoryIdentityStore()
        base = AttachCredentialsOptions(provider_name="github", identity_store=store)
        options = build_options(base, provider_name="google")
        assert options.provider_name == "google"
        assert options.identity_store is store
        assert base.provider_name == "github"

    def test_strategy_mapping_is_wrapped(self) -> None:
        strategy = ScriptedStrategy()
        options = build_options(provider_name="github", strategies={"github": strategy})
        assert options.strategies.get("github") is strategy

    def test_custom_steps(self) -> None:
        policy = with_leeway(30)
        options = build_options(provider_name="github", are_credentials_expired=policy)
        assert options.are_credentials_expired is policy

    @pytest.mark.parametrize("options", [None, {}, {"provider_name": 42}, {"provider_name": None}])
    def test_provider_name_must_be_a_string(self, options) -> None:
        with pytest.raises(ConfigError, match="options.provider_name must be a string"):
            build_options(options)

    def test_invalid_field(self) -> None:
        with pytest.raises(ConfigError, match="options.init_poll_interval is invalid"):
            build_options(provider_name="github", init_poll_interval=0)

    def test_invalid_identity_store(self) -> None:
        with pytest.raises(ConfigError, match="options.identity_store is invalid"):
            build_options(provider_name="github", identity_store="not a store")

    @pytest.mark.parametrize(
        "provider_name, expected",
        [("github", "identities"), ("github-link", "credentials"), ("link-github", "identities")],
    )
    def test_relation_prop_default(self, provider_name: str, expected: str) -> None:
        options = build_options(provider_name=provider_name)
        assert options.subject_relation_prop is None
        assert options.relation_prop == expected
        assert options.credentials_prop == "credentials"

    def test_relation_prop_override(self) -> None:
        options = build_options(provider_name="github-link", subject_relation_prop="accounts")
        assert options.relation_prop == "accounts"
